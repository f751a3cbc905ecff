from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from agency_backend.schemas.base_schema import CamelModel
from agency_backend.schemas.enums import ApplicationPaymentStatus


class PublicApplicationSubmission(CamelModel):
    """Visa application as posted by the public website form."""

    applicant_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = None
    passport_number: Optional[str] = None
    visa_type: str = Field(..., min_length=1)
    travel_purpose: str = Field(..., min_length=1)
    destination: Optional[str] = None
    duration: Optional[str] = None
    travel_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    additional_info: Optional[str] = None
    user_id: Optional[str] = None
    payment_status: Optional[ApplicationPaymentStatus] = None
    status: Optional[str] = None
