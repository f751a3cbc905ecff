from datetime import datetime
from typing import List, Optional

from beanie import Document, Indexed, before_event, Replace, Save, SaveChanges
from pydantic import BaseModel, Field, field_validator

from agency_backend.schemas.enums import StaffRole
from agency_backend.utils.time_utils import utcnow


class RefreshTokenEntry(BaseModel):
    token: str = Field(..., description="Issued refresh token")
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(..., description="When the refresh token stops being accepted")


class StaffUser(Document):
    name: str = Field(..., description="Display name of the staff member")
    email: Indexed(str, unique=True) = Field(..., description="Login e-mail, stored lower-cased")
    password_hash: str = Field(..., description="bcrypt hash of the password")
    role: StaffRole = Field(default=StaffRole.READ_ONLY, description="Staff role used by the RBAC gate")
    is_active: bool = Field(default=True, description="Deactivated accounts cannot log in")
    last_login: Optional[datetime] = Field(None, description="Timestamp of the last successful login")
    refresh_tokens: List[RefreshTokenEntry] = Field(default_factory=list, description="Active refresh tokens, newest last")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("email", mode="before")
    @classmethod
    def _lower_email(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    @before_event(Replace, Save, SaveChanges)
    def _touch(self):
        self.updated_at = utcnow()

    def add_refresh_token(self, token: str, expires_at: datetime, cap: int) -> None:
        """Store a refresh token, dropping expired entries and keeping only the newest ``cap``."""
        now = utcnow()
        kept = [entry for entry in self.refresh_tokens if entry.expires_at > now]
        kept.append(RefreshTokenEntry(token=token, expires_at=expires_at))
        self.refresh_tokens = kept[-cap:] if cap > 0 else []

    def has_refresh_token(self, token: str) -> bool:
        now = utcnow()
        return any(entry.token == token and entry.expires_at > now for entry in self.refresh_tokens)

    def remove_refresh_token(self, token: str) -> bool:
        before = len(self.refresh_tokens)
        self.refresh_tokens = [entry for entry in self.refresh_tokens if entry.token != token]
        return len(self.refresh_tokens) != before

    class Settings:
        name = "staff_users"
