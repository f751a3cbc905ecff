from datetime import datetime
from typing import List, Optional

from beanie import Document, Indexed, PydanticObjectId, before_event, Replace, Save, SaveChanges
from pydantic import BaseModel, Field

from agency_backend.schemas.enums import ApplicationPaymentStatus, ApplicationSource, ApplicationStatus
from agency_backend.utils.time_utils import utcnow


class TravelDates(BaseModel):
    from_date: Optional[datetime] = Field(None, description="Planned departure")
    to_date: Optional[datetime] = Field(None, description="Planned return")


class Comment(BaseModel):
    text: str = Field(..., max_length=2000)
    created_by: Optional[PydanticObjectId] = None
    created_by_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    is_visible_to_applicant: bool = Field(default=False, description="Shown on the public status page when true")


class InternalNote(BaseModel):
    text: str = Field(..., max_length=2000)
    created_by: Optional[PydanticObjectId] = None
    created_by_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Application(Document):
    applicant_name: str = Field(..., description="Full name of the applicant")
    applicant_email: str = Field(..., description="Contact e-mail, stored lower-cased")
    applicant_phone: Optional[str] = None
    passport_number: Optional[str] = None
    visa_type: str = Field(..., description="Requested visa category, e.g. 'Tourist Visa'")
    travel_purpose: Optional[str] = None
    destination: Optional[str] = None
    duration: Optional[str] = None
    travel_dates: Optional[TravelDates] = None
    additional_info: Optional[str] = None
    external_user_id: Optional[str] = Field(None, description="Identifier of the website account that submitted it")
    payment_status: ApplicationPaymentStatus = Field(default=ApplicationPaymentStatus.PENDING)

    status: ApplicationStatus = Field(default=ApplicationStatus.DRAFT)
    source: ApplicationSource = Field(default=ApplicationSource.ADMIN)
    reference_number: Indexed(str, unique=True) = Field(..., description="Public reference such as FAF-123456")
    locked: bool = Field(default=False, description="Set on first submission; only withdrawal is allowed afterwards")
    submitted_at: Optional[datetime] = None
    assigned_officer: Optional[PydanticObjectId] = None
    created_by: Optional[PydanticObjectId] = None

    documents: List[PydanticObjectId] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)
    internal_notes: List[InternalNote] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @before_event(Replace, Save, SaveChanges)
    def _touch(self):
        self.updated_at = utcnow()

    class Settings:
        name = "applications"
