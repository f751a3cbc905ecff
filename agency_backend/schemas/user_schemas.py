from typing import Optional

from pydantic import EmailStr, Field

from agency_backend.schemas.base_schema import CamelModel
from agency_backend.schemas.enums import StaffRole


class LoginRequest(CamelModel):
    email: str = ""
    password: str = ""


class RefreshRequest(CamelModel):
    refresh_token: str = ""


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str
    new_password: str = Field(..., min_length=8)


class StaffUserCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: StaffRole = StaffRole.READ_ONLY


class StaffUserUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[StaffRole] = None
    is_active: Optional[bool] = None
