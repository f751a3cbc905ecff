from datetime import datetime
from typing import List, Optional

from beanie import Document, Indexed, PydanticObjectId, before_event, Replace, Save, SaveChanges
from pydantic import BaseModel, Field

from agency_backend.schemas.enums import BookingSource, BookingStatus, PaymentStatus
from agency_backend.utils.time_utils import utcnow


class BookingComment(BaseModel):
    text: str = Field(..., max_length=2000)
    created_by: Optional[PydanticObjectId] = None
    created_by_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    is_visible_to_customer: bool = Field(default=False)


class BookingNote(BaseModel):
    text: str = Field(..., max_length=2000)
    created_by: Optional[PydanticObjectId] = None
    created_by_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Booking(Document):
    customer_name: str = Field(..., description="Name of the lead traveller")
    customer_email: str = Field(..., description="Contact e-mail, stored lower-cased")
    customer_phone: Optional[str] = None
    tour_name: str = Field(..., description="Tour being booked")
    tour_package: Optional[str] = None
    departure_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    number_of_travelers: int = Field(default=1, ge=1)
    total_amount: float = Field(default=0, ge=0)
    special_requests: Optional[str] = None

    status: BookingStatus = Field(default=BookingStatus.PENDING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    source: BookingSource = Field(default=BookingSource.ADMIN)
    reference_number: Indexed(str, unique=True) = Field(..., description="Public reference such as BK-123456")
    created_by: Optional[PydanticObjectId] = None

    comments: List[BookingComment] = Field(default_factory=list)
    internal_notes: List[BookingNote] = Field(default_factory=list)

    confirmed_at: Optional[datetime] = Field(None, description="Set on the first move to Confirmed only")
    cancelled_at: Optional[datetime] = Field(None, description="Set on the first move to Cancelled only")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @before_event(Replace, Save, SaveChanges)
    def _touch(self):
        self.updated_at = utcnow()

    class Settings:
        name = "bookings"
