from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from agency_backend.schemas.base_schema import CamelModel
from agency_backend.schemas.enums import ApplicationPaymentStatus


class ApplicationCreate(CamelModel):
    applicant_name: str = Field(..., min_length=1, max_length=200)
    applicant_email: EmailStr
    applicant_phone: Optional[str] = None
    passport_number: Optional[str] = None
    visa_type: str = Field(..., min_length=1)
    travel_purpose: Optional[str] = None
    destination: Optional[str] = None
    duration: Optional[str] = None
    travel_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    additional_info: Optional[str] = None
    assigned_officer: Optional[str] = None


class ApplicationUpdate(CamelModel):
    applicant_name: Optional[str] = Field(None, min_length=1, max_length=200)
    applicant_email: Optional[EmailStr] = None
    applicant_phone: Optional[str] = None
    passport_number: Optional[str] = None
    visa_type: Optional[str] = None
    travel_purpose: Optional[str] = None
    destination: Optional[str] = None
    duration: Optional[str] = None
    travel_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    additional_info: Optional[str] = None
    payment_status: Optional[ApplicationPaymentStatus] = None


class StatusUpdate(CamelModel):
    status: str
    comment: Optional[str] = Field(None, max_length=1000)


class AssignOfficer(CamelModel):
    officer_id: str


class NoteCreate(CamelModel):
    note: str = Field(..., min_length=1, max_length=2000)


class CommentCreate(CamelModel):
    text: str = Field(..., min_length=1, max_length=2000)
    is_visible_to_applicant: bool = False


class ReopenRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=1000)


class BulkDeleteRequest(CamelModel):
    ids: list[str] = Field(..., min_length=1)
