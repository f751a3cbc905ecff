import logging
import re
from typing import Any, Dict, List, Optional

from agency_backend.core.exceptions import ResourceNotFound
from agency_backend.database.models import Booking, BookingComment, BookingNote, StaffUser
from agency_backend.helpers.response_builder import serialize_document
from agency_backend.schemas.booking_schema import BookingCreate, BookingUpdate
from agency_backend.schemas.enums import AuditAction, BookingStatus, PaymentStatus, StaffRole
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.workflow_service import parse_status, to_object_id
from agency_backend.utils.reference_numbers import booking_reference, insert_with_reference

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class BookingService:
    """Tour bookings: CRUD, comments and revenue statistics."""

    async def get_booking(self, booking_id: Any) -> Booking:
        booking = await Booking.get(to_object_id(booking_id, "booking id"))
        if booking is None:
            raise ResourceNotFound("Booking")
        return booking

    async def create_booking(self, data: BookingCreate, actor: Optional[StaffUser] = None,
                             context: Optional[RequestContext] = None, actor_label: Optional[str] = None) -> Booking:
        booking = Booking(
            customer_name=data.customer_name,
            customer_email=str(data.customer_email).lower(),
            customer_phone=data.customer_phone,
            tour_name=data.tour_name,
            tour_package=data.tour_package,
            departure_date=data.departure_date,
            return_date=data.return_date,
            number_of_travelers=data.number_of_travelers,
            total_amount=data.total_amount,
            special_requests=data.special_requests,
            source=data.source,
            reference_number=booking_reference(),
            created_by=actor.id if actor else None,
        )
        await insert_with_reference(booking, booking_reference)
        await audit_service.log_event(
            AuditAction.BOOKING_CREATED,
            user=actor,
            actor_label=actor_label,
            user_email=None if actor else booking.customer_email,
            context=context,
            entity_type="Booking",
            entity_id=booking.id,
            metadata={"referenceNumber": booking.reference_number, "tourName": booking.tour_name,
                      "source": booking.source.value},
        )
        logger.info("Booking %s created (%s)", booking.reference_number, booking.source.value)
        return booking

    async def list_bookings(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)
        query: Dict[str, Any] = {}
        if status:
            query["status"] = parse_status(BookingStatus, status).value
        if payment_status:
            query["payment_status"] = parse_status(PaymentStatus, payment_status).value
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"customer_name": pattern}, {"customer_email": pattern},
                            {"tour_name": pattern}, {"reference_number": pattern}]

        total = await Booking.find(query).count()
        items = await Booking.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
        return {
            "bookings": [serialize_document(b) for b in items],
            "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
        }

    async def update_booking(self, booking: Booking, data: BookingUpdate, actor: StaffUser,
                             context: Optional[RequestContext] = None) -> Booking:
        changes = data.model_dump(exclude_unset=True)
        if changes.get("customer_email"):
            changes["customer_email"] = str(changes["customer_email"]).lower()
        for key, value in changes.items():
            setattr(booking, key, value)
        await booking.save()
        await audit_service.log_event(
            AuditAction.BOOKING_UPDATED,
            user=actor,
            context=context,
            entity_type="Booking",
            entity_id=booking.id,
            metadata={"fields": sorted(changes.keys())},
        )
        return booking

    async def add_comment(self, booking: Booking, text: str, visible_to_customer: bool, actor: StaffUser,
                          context: Optional[RequestContext] = None) -> Booking:
        booking.comments.append(BookingComment(text=text.strip(), created_by=actor.id, created_by_name=actor.name,
                                               is_visible_to_customer=visible_to_customer))
        await booking.save()
        await audit_service.log_event(AuditAction.BOOKING_COMMENT_ADDED, user=actor, context=context,
                                      entity_type="Booking", entity_id=booking.id)
        return booking

    async def add_note(self, booking: Booking, text: str, actor: StaffUser,
                       context: Optional[RequestContext] = None) -> Booking:
        booking.internal_notes.append(BookingNote(text=text.strip(), created_by=actor.id, created_by_name=actor.name))
        await booking.save()
        await audit_service.log_event(AuditAction.BOOKING_NOTE_ADDED, user=actor, context=context,
                                      entity_type="Booking", entity_id=booking.id)
        return booking

    async def get_stats(self) -> Dict[str, Any]:
        total = await Booking.find({}).count()
        by_status = await Booking.aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}]).to_list()
        by_payment = await Booking.aggregate([{"$group": {"_id": "$payment_status", "count": {"$sum": 1}}}]).to_list()
        revenue = await Booking.aggregate([
            {"$match": {"payment_status": PaymentStatus.PAID.value}},
            {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
        ]).to_list()

        status_counts = {s.value: 0 for s in BookingStatus}
        for row in by_status:
            status_counts[row["_id"]] = row["count"]
        payment_counts = {s.value: 0 for s in PaymentStatus}
        for row in by_payment:
            payment_counts[row["_id"]] = row["count"]
        return {
            "total": total,
            "byStatus": status_counts,
            "byPaymentStatus": payment_counts,
            "totalRevenue": revenue[0]["total"] if revenue else 0,
        }

    async def delete_booking(self, booking: Booking, actor: StaffUser, context: Optional[RequestContext] = None):
        await booking.delete()
        await audit_service.log_event(
            AuditAction.BOOKING_DELETED,
            user=actor,
            context=context,
            entity_type="Booking",
            entity_id=booking.id,
            metadata={"referenceNumber": booking.reference_number},
        )
        logger.info("Booking %s deleted by %s", booking.reference_number, actor.email)

    async def bulk_delete(self, ids: List[str], actor: StaffUser,
                          context: Optional[RequestContext] = None) -> Dict[str, Any]:
        object_ids = [(raw_id, to_object_id(raw_id, "booking id")) for raw_id in ids]
        deleted: List[str] = []
        skipped: List[str] = []
        for raw_id, object_id in object_ids:
            booking = await Booking.get(object_id)
            if booking is None or (actor.role != StaffRole.SUPER_ADMIN and booking.created_by != actor.id):
                skipped.append(raw_id)
                continue
            await self.delete_booking(booking, actor, context)
            deleted.append(raw_id)
        return {"deletedCount": len(deleted), "deleted": deleted, "skipped": skipped}


booking_service = BookingService()
