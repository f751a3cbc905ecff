from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from agency_backend.core.auth_dependencies import get_request_context, require_role
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_document, success_response
from agency_backend.schemas.application_schema import BulkDeleteRequest, NoteCreate
from agency_backend.schemas.booking_schema import (
    BookingCommentCreate,
    BookingCreate,
    BookingStatusUpdate,
    BookingUpdate,
    PaymentStatusUpdate,
)
from agency_backend.schemas.enums import StaffRole
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.booking_service import booking_service
from agency_backend.services.workflow_service import workflow_service

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

SA = StaffRole.SUPER_ADMIN
VO = StaffRole.VISA_OFFICER
FO = StaffRole.FINANCE_OFFICER

booking_staff = require_role(SA, VO, FO)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    body: BookingCreate,
    current_user: StaffUser = Depends(booking_staff),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.create_booking(body, current_user, context)
    return success_response(serialize_document(booking), "Booking created")


@router.get("")
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    search: Optional[str] = None,
    current_user: StaffUser = Depends(booking_staff),
):
    return success_response(await booking_service.list_bookings(page, limit, status_filter, payment_status, search))


@router.get("/stats")
async def booking_stats(current_user: StaffUser = Depends(require_role(SA, FO))):
    return success_response(await booking_service.get_stats())


@router.delete("/bulk/delete")
async def bulk_delete_bookings(
    body: BulkDeleteRequest,
    current_user: StaffUser = Depends(booking_staff),
    context: RequestContext = Depends(get_request_context),
):
    result = await booking_service.bulk_delete(body.ids, current_user, context)
    return success_response(result, f"{result['deletedCount']} booking(s) deleted")


@router.get("/{booking_id}")
async def get_booking(booking_id: str, current_user: StaffUser = Depends(booking_staff)):
    return success_response(serialize_document(await booking_service.get_booking(booking_id)))


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    body: BookingUpdate,
    current_user: StaffUser = Depends(booking_staff),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.get_booking(booking_id)
    booking = await booking_service.update_booking(booking, body, current_user, context)
    return success_response(serialize_document(booking), "Booking updated")


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: str,
    current_user: StaffUser = Depends(require_role(SA)),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.get_booking(booking_id)
    await booking_service.delete_booking(booking, current_user, context)
    return success_response(message="Booking deleted")


@router.patch("/{booking_id}/status")
async def update_booking_status(
    booking_id: str,
    body: BookingStatusUpdate,
    current_user: StaffUser = Depends(booking_staff),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.get_booking(booking_id)
    booking = await workflow_service.update_booking_status(booking, body.status, current_user, context)
    return success_response(serialize_document(booking), "Booking status updated")


@router.patch("/{booking_id}/payment")
async def update_payment_status(
    booking_id: str,
    body: PaymentStatusUpdate,
    current_user: StaffUser = Depends(require_role(SA, FO)),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.get_booking(booking_id)
    booking = await workflow_service.update_payment_status(booking, body.payment_status, current_user, context)
    return success_response(serialize_document(booking), "Payment status updated")


@router.post("/{booking_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    booking_id: str,
    body: BookingCommentCreate,
    current_user: StaffUser = Depends(booking_staff),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.get_booking(booking_id)
    booking = await booking_service.add_comment(booking, body.text, body.is_visible_to_customer, current_user, context)
    return success_response(serialize_document(booking), "Comment added")


@router.post("/{booking_id}/notes", status_code=status.HTTP_201_CREATED)
async def add_note(
    booking_id: str,
    body: NoteCreate,
    current_user: StaffUser = Depends(booking_staff),
    context: RequestContext = Depends(get_request_context),
):
    booking = await booking_service.get_booking(booking_id)
    booking = await booking_service.add_note(booking, body.note, current_user, context)
    return success_response(serialize_document(booking), "Note added")
