from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from agency_backend.schemas.base_schema import CamelModel
from agency_backend.schemas.enums import BookingSource


class BookingCreate(CamelModel):
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    tour_name: str = Field(..., min_length=1)
    tour_package: Optional[str] = None
    departure_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    number_of_travelers: int = Field(default=1, ge=1)
    total_amount: float = Field(default=0, ge=0)
    special_requests: Optional[str] = None
    source: BookingSource = BookingSource.ADMIN


class BookingUpdate(CamelModel):
    customer_name: Optional[str] = Field(None, min_length=1, max_length=200)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    tour_name: Optional[str] = None
    tour_package: Optional[str] = None
    departure_date: Optional[datetime] = None
    return_date: Optional[datetime] = None
    number_of_travelers: Optional[int] = Field(None, ge=1)
    total_amount: Optional[float] = Field(None, ge=0)
    special_requests: Optional[str] = None


class BookingStatusUpdate(CamelModel):
    status: str


class PaymentStatusUpdate(CamelModel):
    payment_status: str


class BookingCommentCreate(CamelModel):
    text: str = Field(..., min_length=1, max_length=2000)
    is_visible_to_customer: bool = False
