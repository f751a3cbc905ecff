"""Status rules for applications, documents and bookings.

The module-level functions are pure and hold the rules; ``WorkflowService``
applies them to stored records and writes the matching timeline entries and
audit records.
"""

import logging
from typing import Any, Dict, Iterable, Optional, Type, TypeVar

from beanie import PydanticObjectId
from bson.errors import InvalidId

from agency_backend.core.exceptions import (
    InsufficientRole,
    InvalidStatus,
    LockedApplication,
    MissingReason,
    ResourceNotFound,
    ValidationFailed,
)
from agency_backend.database.models import Application, ApplicationDocument, ApplicationTimeline, Booking, StaffUser
from agency_backend.schemas.enums import (
    ApplicationStatus,
    AuditAction,
    BookingStatus,
    DocumentStatus,
    PaymentStatus,
    StaffRole,
    TimelineAction,
)
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.notification_service import notification_service
from agency_backend.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

E = TypeVar("E")

REVIEWER_BLOCKED_STATUSES = frozenset({ApplicationStatus.APPROVED, ApplicationStatus.REJECTED})
REVIEWABLE_DOCUMENT_STATUSES = (DocumentStatus.VERIFIED, DocumentStatus.REJECTED, DocumentStatus.REUPLOAD_REQUIRED)
NOTIFY_ON_STATUSES = frozenset({
    ApplicationStatus.SUBMITTED,
    ApplicationStatus.QUERIED,
    ApplicationStatus.APPROVED,
    ApplicationStatus.REJECTED,
})
TIMELINE_COMMENT_LIMIT = 1000


def parse_status(enum_cls: Type[E], value: Any, allowed: Optional[Iterable[E]] = None) -> E:
    """Coerce ``value`` into ``enum_cls``, raising InvalidStatus when it is not a member of ``allowed``."""
    allowed = list(allowed) if allowed is not None else list(enum_cls)
    try:
        parsed = enum_cls(value)
    except ValueError:
        raise InvalidStatus(value, [s.value for s in allowed])
    if parsed not in allowed:
        raise InvalidStatus(value, [s.value for s in allowed])
    return parsed


def check_status_change(application: Application, requested_status: Any, actor_role: StaffRole) -> ApplicationStatus:
    """Validate a manual status change; checks run in order: value, lock, role."""
    new_status = parse_status(ApplicationStatus, requested_status)
    if application.locked and new_status != ApplicationStatus.WITHDRAWN:
        raise LockedApplication()
    if StaffRole(actor_role) == StaffRole.REVIEWER and new_status in REVIEWER_BLOCKED_STATUSES:
        raise InsufficientRole(
            "Reviewers cannot approve or reject applications",
            required_roles=[StaffRole.SUPER_ADMIN.value, StaffRole.VISA_OFFICER.value],
            user_role=StaffRole.REVIEWER.value,
        )
    return new_status


def derive_application_status(current: ApplicationStatus,
                              document_statuses: Iterable[DocumentStatus]) -> Optional[ApplicationStatus]:
    """Roll document statuses up into an application status.

    Returns the new status, or None when nothing should change. First match wins:
    any Rejected / Re-upload Required gives Queried, then any Uploaded gives
    Under Review (Submitted is kept), then all Verified gives Approved unless
    the application is already Approved or Rejected.
    """
    statuses = [DocumentStatus(s) for s in document_statuses]
    if not statuses:
        return None
    current = ApplicationStatus(current)

    if any(s in (DocumentStatus.REJECTED, DocumentStatus.REUPLOAD_REQUIRED) for s in statuses):
        return ApplicationStatus.QUERIED if current != ApplicationStatus.QUERIED else None

    if any(s == DocumentStatus.UPLOADED for s in statuses):
        if current in (ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW):
            return None
        return ApplicationStatus.UNDER_REVIEW

    if all(s == DocumentStatus.VERIFIED for s in statuses):
        if current in (ApplicationStatus.APPROVED, ApplicationStatus.REJECTED):
            return None
        return ApplicationStatus.APPROVED

    return None


def to_object_id(value: Any, field: str = "id") -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationFailed(f"Invalid {field}")


class WorkflowService:

    async def record_timeline(
        self,
        application_id: PydanticObjectId,
        action: TimelineAction,
        *,
        actor: Optional[StaffUser] = None,
        actor_label: Optional[str] = None,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        comment: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ApplicationTimeline:
        entry = ApplicationTimeline(
            application_id=application_id,
            action=action,
            performed_by=actor.id if actor else None,
            performed_by_label=actor.name if actor else actor_label,
            previous_status=previous_status,
            new_status=new_status,
            comment=comment[:TIMELINE_COMMENT_LIMIT] if comment else comment,
            metadata=metadata or {},
        )
        await entry.insert()
        return entry

    async def _log_denial(self, actor: StaffUser, context: Optional[RequestContext], error: InsufficientRole,
                          entity_type: str, entity_id: Optional[PydanticObjectId]):
        logger.warning("Denied %s on %s %s: %s", actor.email, entity_type, entity_id, error.message)
        await audit_service.log_forbidden_access(
            actor,
            context,
            reason=error.message,
            metadata={**error.details, "entityType": entity_type, "entityId": str(entity_id) if entity_id else None},
        )

    async def _notify_status(self, application: Application):
        if application.status not in NOTIFY_ON_STATUSES:
            return
        try:
            await notification_service.send_application_status_update(application)
        except Exception:
            logger.exception("Status e-mail for %s failed", application.reference_number)

    async def update_application_status(
        self,
        application: Application,
        requested_status: Any,
        actor: StaffUser,
        comment: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> Application:
        try:
            new_status = check_status_change(application, requested_status, actor.role)
        except InsufficientRole as e:
            await self._log_denial(actor, context, e, "Application", application.id)
            raise
        previous_status = application.status

        application.status = new_status
        first_submission = new_status == ApplicationStatus.SUBMITTED and application.submitted_at is None
        if first_submission:
            application.submitted_at = utcnow()
            application.locked = True
        await application.save()

        if first_submission:
            action = TimelineAction.SUBMITTED
        elif new_status == ApplicationStatus.WITHDRAWN:
            action = TimelineAction.WITHDRAWN
        else:
            action = TimelineAction.STATUS_CHANGED
        await self.record_timeline(
            application.id,
            action,
            actor=actor,
            previous_status=previous_status.value,
            new_status=new_status.value,
            comment=comment or f"Status changed from {previous_status.value} to {new_status.value}",
        )
        await audit_service.log_event(
            AuditAction.APPLICATION_STATUS_CHANGED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={
                "referenceNumber": application.reference_number,
                "previousStatus": previous_status.value,
                "newStatus": new_status.value,
            },
        )
        logger.info("Application %s: %s -> %s by %s", application.reference_number,
                    previous_status.value, new_status.value, actor.email)
        await self._notify_status(application)
        return application

    async def submit_application(self, application: Application, actor: StaffUser,
                                 context: Optional[RequestContext] = None) -> Application:
        return await self.update_application_status(
            application, ApplicationStatus.SUBMITTED, actor, comment="Application submitted", context=context
        )

    async def derive_status_from_documents(self, application_id: PydanticObjectId) -> Optional[ApplicationStatus]:
        """Apply the document rollup to a stored application; returns the new status or None."""
        application = await Application.get(application_id)
        if application is None:
            return None
        documents = await ApplicationDocument.find(ApplicationDocument.application_id == application.id).to_list()
        new_status = derive_application_status(application.status, [d.status for d in documents])
        if new_status is None:
            return None

        previous_status = application.status
        application.status = new_status
        await application.save()
        await self.record_timeline(
            application.id,
            TimelineAction.STATUS_CHANGED,
            actor_label="System",
            previous_status=previous_status.value,
            new_status=new_status.value,
            comment="Status updated from document review",
            metadata={"derived": True, "documentCount": len(documents)},
        )
        logger.info("Application %s derived %s -> %s from %d documents", application.reference_number,
                    previous_status.value, new_status.value, len(documents))
        await self._notify_status(application)
        return new_status

    async def assign_officer(self, application: Application, officer_id: Any, actor: StaffUser,
                             context: Optional[RequestContext] = None) -> Application:
        officer = await StaffUser.get(to_object_id(officer_id, "officer id"))
        if officer is None or not officer.is_active or officer.role == StaffRole.READ_ONLY:
            raise ResourceNotFound("Officer")

        previous_officer = application.assigned_officer
        application.assigned_officer = officer.id
        await application.save()

        await self.record_timeline(
            application.id,
            TimelineAction.OFFICER_ASSIGNED,
            actor=actor,
            comment=f"Assigned to {officer.name}",
            metadata={"officerId": str(officer.id), "previousOfficerId": str(previous_officer) if previous_officer else None},
        )
        await audit_service.log_event(
            AuditAction.APPLICATION_OFFICER_ASSIGNED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"referenceNumber": application.reference_number, "officerId": str(officer.id),
                      "officerName": officer.name},
        )
        return application

    async def update_document_status(
        self,
        document: ApplicationDocument,
        new_status: Any,
        actor: StaffUser,
        rejection_reason: Optional[str] = None,
        context: Optional[RequestContext] = None,
        notes: Optional[str] = None,
        derive_status: bool = False,
    ) -> ApplicationDocument:
        status = parse_status(DocumentStatus, new_status, REVIEWABLE_DOCUMENT_STATUSES)
        if actor.role == StaffRole.READ_ONLY:
            error = InsufficientRole("Read-only users cannot change document status", user_role=actor.role.value)
            await self._log_denial(actor, context, error, "Document", document.id)
            raise error
        reason = (rejection_reason or "").strip()
        if status == DocumentStatus.REJECTED and not reason:
            raise MissingReason()

        previous_status = document.status
        document.status = status
        if status == DocumentStatus.VERIFIED:
            document.verified_by = actor.id
            document.verified_at = utcnow()
            document.rejection_reason = None
        elif reason:
            document.rejection_reason = reason
        if notes is not None:
            document.notes = notes
        await document.save()

        await self.record_timeline(
            document.application_id,
            TimelineAction.DOCUMENT_STATUS_CHANGED,
            actor=actor,
            previous_status=previous_status.value,
            new_status=status.value,
            comment=f"{document.document_type.value}: {previous_status.value} -> {status.value}"
                    + (f" ({reason})" if reason else ""),
            metadata={"documentId": str(document.id)},
        )
        await audit_service.log_event(
            AuditAction.DOCUMENT_STATUS_CHANGED,
            user=actor,
            context=context,
            entity_type="Document",
            entity_id=document.id,
            metadata={"applicationId": str(document.application_id), "previousStatus": previous_status.value,
                      "newStatus": status.value, "rejectionReason": reason or None},
        )

        if derive_status:
            # document write and rollup are separate single-document writes
            try:
                await self.derive_status_from_documents(document.application_id)
            except Exception:
                logger.exception("Status derivation failed for application %s", document.application_id)
        return document

    async def update_booking_status(self, booking: Booking, new_status: Any, actor: Optional[StaffUser] = None,
                                    context: Optional[RequestContext] = None) -> Booking:
        status = parse_status(BookingStatus, new_status)
        previous_status = booking.status
        booking.status = status
        now = utcnow()
        if status == BookingStatus.CONFIRMED and booking.confirmed_at is None:
            booking.confirmed_at = now
        if status == BookingStatus.CANCELLED and booking.cancelled_at is None:
            booking.cancelled_at = now
        await booking.save()

        await audit_service.log_event(
            AuditAction.BOOKING_STATUS_CHANGED,
            user=actor,
            context=context,
            entity_type="Booking",
            entity_id=booking.id,
            metadata={"referenceNumber": booking.reference_number, "previousStatus": previous_status.value,
                      "newStatus": status.value},
        )
        return booking

    async def update_payment_status(self, booking: Booking, payment_status: Any, actor: Optional[StaffUser] = None,
                                    context: Optional[RequestContext] = None) -> Booking:
        status = parse_status(PaymentStatus, payment_status)
        previous = booking.payment_status
        booking.payment_status = status
        await booking.save()
        await audit_service.log_event(
            AuditAction.BOOKING_PAYMENT_UPDATED,
            user=actor,
            context=context,
            entity_type="Booking",
            entity_id=booking.id,
            metadata={"referenceNumber": booking.reference_number, "previousPaymentStatus": previous.value,
                      "newPaymentStatus": status.value},
        )
        return booking

    async def reopen_application(self, application: Application, actor: StaffUser,
                                 context: Optional[RequestContext] = None, reason: Optional[str] = None) -> Application:
        if actor.role != StaffRole.SUPER_ADMIN:
            error = InsufficientRole("Only a Super Admin can reopen a locked application",
                                     required_roles=[StaffRole.SUPER_ADMIN.value], user_role=actor.role.value)
            await self._log_denial(actor, context, error, "Application", application.id)
            raise error
        if not application.locked:
            return application
        application.locked = False
        await application.save()
        await self.record_timeline(application.id, TimelineAction.REOPENED, actor=actor,
                                   new_status=application.status.value, comment=reason or "Application reopened")
        await audit_service.log_event(
            AuditAction.APPLICATION_REOPENED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"referenceNumber": application.reference_number, "reason": reason},
        )
        return application


workflow_service = WorkflowService()
