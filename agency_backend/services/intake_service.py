"""Unauthenticated entry points used by the public website.

Website forms have historically posted hand-built JSON, so bodies are parsed
leniently: single quotes and bare object keys are repaired before giving up
with a 400 that shows the expected shape.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

from fastapi import UploadFile
from pydantic import ValidationError

from agency_backend.core.exceptions import MalformedPayload, ResourceNotFound, ValidationFailed
from agency_backend.database.models import Application, ApplicationDocument, Booking, TravelDates
from agency_backend.schemas.booking_schema import BookingCreate
from agency_backend.schemas.enums import (
    ApplicationPaymentStatus,
    ApplicationSource,
    ApplicationStatus,
    AuditAction,
    BookingSource,
    BookingStatus,
    TimelineAction,
)
from agency_backend.schemas.intake_schema import PublicApplicationSubmission
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.booking_service import booking_service
from agency_backend.services.document_service import document_service
from agency_backend.services.notification_service import notification_service
from agency_backend.services.workflow_service import parse_status, workflow_service
from agency_backend.utils.reference_numbers import application_reference, insert_with_reference
from agency_backend.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

PUBLIC_ACTOR = "Public Website"

APPLICATION_EXAMPLE = {
    "applicantName": "John Doe",
    "email": "john@example.com",
    "visaType": "Tourist Visa",
    "travelPurpose": "Tourism",
}
BOOKING_EXAMPLE = {
    "customerName": "John Doe",
    "customerEmail": "john@example.com",
    "tourName": "Safari Tour",
    "numberOfTravelers": 2,
}

DOCUMENT_URL_EXAMPLE = {
    "referenceNumber": "FAF-123456",
    "email": "john@example.com",
    "documentType": "Passport",
    "cloudinaryUrl": "https://res.cloudinary.com/demo/image/upload/passport.pdf",
}

_BARE_KEY = re.compile(r"([{,]\s*)([a-zA-Z_][a-zA-Z0-9_]*)(\s*:)")

APPLICATION_STATUS_MESSAGES = {
    ApplicationStatus.DRAFT: "Your application has been saved as a draft.",
    ApplicationStatus.SUBMITTED: "Your application has been received and is awaiting review.",
    ApplicationStatus.UNDER_REVIEW: "Your application is currently being reviewed by our team.",
    ApplicationStatus.QUERIED: "We need additional information or documents. Please check your email.",
    ApplicationStatus.APPROVED: "Congratulations! Your application has been approved.",
    ApplicationStatus.REJECTED: "Unfortunately your application was not approved. Please contact us for details.",
    ApplicationStatus.WITHDRAWN: "This application has been withdrawn.",
}
BOOKING_STATUS_MESSAGES = {
    BookingStatus.PENDING: "Your booking has been received and is awaiting confirmation.",
    BookingStatus.CONFIRMED: "Your booking is confirmed.",
    BookingStatus.IN_PROGRESS: "Your tour is in progress. Enjoy your trip!",
    BookingStatus.COMPLETED: "Your tour has been completed. Thank you for travelling with us.",
    BookingStatus.CANCELLED: "This booking has been cancelled.",
}


def parse_lenient_json(raw: Union[str, bytes], example: Dict[str, Any]) -> Dict[str, Any]:
    """Parse a JSON object, repairing single quotes and then bare keys; the repairs are cumulative."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else (raw or "")
    quoted = text.replace("'", '"')
    for candidate in (text, quoted, _BARE_KEY.sub(r'\1"\2"\3', quoted)):
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
        break
    logger.warning("Irreparable public submission body (%d chars)", len(text))
    raise MalformedPayload(example, text)


def require_fields(payload: Dict[str, Any], names: List[str], example: Dict[str, Any]) -> None:
    missing = [name for name in names if not payload.get(name)]
    if missing:
        raise ValidationFailed(
            f"Missing required fields: {', '.join(missing)}",
            details={"missingFields": missing, "example": example},
        )


def validation_details(exc: ValidationError) -> List[Dict[str, Any]]:
    return [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in exc.errors()]


def _receipt(record) -> Dict[str, Any]:
    return {
        "id": str(record.id),
        "referenceNumber": record.reference_number,
        "status": record.status.value,
        "createdAt": record.created_at.isoformat(),
    }


class IntakeService:

    async def submit_application(self, payload: Dict[str, Any],
                                 context: Optional[RequestContext] = None) -> Dict[str, Any]:
        if not payload.get("email") and payload.get("applicantEmail"):
            payload = {**payload, "email": payload["applicantEmail"]}
        require_fields(payload, ["applicantName", "email", "visaType", "travelPurpose"], APPLICATION_EXAMPLE)
        try:
            data = PublicApplicationSubmission.model_validate(payload)
        except ValidationError as e:
            raise ValidationFailed("Invalid application data", details={"errors": validation_details(e)})

        status = parse_status(ApplicationStatus, data.status or ApplicationStatus.SUBMITTED.value,
                              [ApplicationStatus.DRAFT, ApplicationStatus.SUBMITTED])
        travel_dates = None
        if data.travel_date or data.return_date:
            travel_dates = TravelDates(from_date=data.travel_date, to_date=data.return_date)

        application = Application(
            applicant_name=data.applicant_name,
            applicant_email=str(data.email).lower(),
            applicant_phone=data.phone,
            passport_number=data.passport_number,
            visa_type=data.visa_type,
            travel_purpose=data.travel_purpose,
            destination=data.destination,
            duration=data.duration,
            travel_dates=travel_dates,
            additional_info=data.additional_info,
            external_user_id=data.user_id,
            payment_status=data.payment_status or ApplicationPaymentStatus.PENDING,
            status=status,
            source=ApplicationSource.WEBSITE,
            reference_number=application_reference(),
            submitted_at=utcnow() if status == ApplicationStatus.SUBMITTED else None,
        )
        await insert_with_reference(application, application_reference)

        await workflow_service.record_timeline(application.id, TimelineAction.CREATED, actor_label=PUBLIC_ACTOR,
                                               new_status=status.value,
                                               comment="Application submitted through the website")
        await audit_service.log_event(
            AuditAction.APPLICATION_CREATED,
            actor_label=PUBLIC_ACTOR,
            user_email=application.applicant_email,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"referenceNumber": application.reference_number, "source": ApplicationSource.WEBSITE.value},
        )
        logger.info("Public application %s received", application.reference_number)

        try:
            await notification_service.send_application_confirmation(application)
            await notification_service.send_admin_application_alert(application)
        except Exception:
            logger.exception("Notification e-mails for %s failed", application.reference_number)

        return _receipt(application)

    async def submit_booking(self, payload: Dict[str, Any],
                             context: Optional[RequestContext] = None) -> Dict[str, Any]:
        require_fields(payload, ["customerName", "customerEmail", "tourName"], BOOKING_EXAMPLE)
        try:
            data = BookingCreate.model_validate({**payload, "source": BookingSource.WEBSITE.value})
        except ValidationError as e:
            raise ValidationFailed("Invalid booking data", details={"errors": validation_details(e)})

        booking = await booking_service.create_booking(data, context=context, actor_label=PUBLIC_ACTOR)
        try:
            await notification_service.send_booking_confirmation(booking)
        except Exception:
            logger.exception("Booking confirmation e-mail for %s failed", booking.reference_number)
        return _receipt(booking)

    async def find_application(self, reference_number: Optional[str], email: Optional[str]) -> Application:
        missing = [name for name, value in (("referenceNumber", reference_number), ("email", email)) if not value]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}",
                                   details={"missingFields": missing})
        application = await Application.find_one(
            Application.reference_number == reference_number.strip().upper(),
            Application.applicant_email == email.strip().lower(),
        )
        if application is None:
            raise ResourceNotFound("Application")
        return application

    async def application_status(self, reference_number: Optional[str], email: Optional[str]) -> Dict[str, Any]:
        application = await self.find_application(reference_number, email)
        documents = await ApplicationDocument.find(ApplicationDocument.application_id == application.id).to_list()
        return {
            "referenceNumber": application.reference_number,
            "applicantName": application.applicant_name,
            "visaType": application.visa_type,
            "status": application.status.value,
            "statusMessage": APPLICATION_STATUS_MESSAGES[application.status],
            "submittedAt": application.submitted_at.isoformat() if application.submitted_at else None,
            "createdAt": application.created_at.isoformat(),
            "updatedAt": application.updated_at.isoformat(),
            "comments": [
                {"text": c.text, "createdAt": c.created_at.isoformat()}
                for c in application.comments if c.is_visible_to_applicant
            ],
            "documents": [
                {
                    "documentType": d.document_type.value,
                    "status": d.status.value,
                    "rejectionReason": d.rejection_reason,
                    "uploadedAt": d.created_at.isoformat(),
                }
                for d in documents
            ],
        }

    async def booking_status(self, reference_number: Optional[str], email: Optional[str]) -> Dict[str, Any]:
        missing = [name for name, value in (("referenceNumber", reference_number), ("email", email)) if not value]
        if missing:
            raise ValidationFailed(f"Missing required fields: {', '.join(missing)}",
                                   details={"missingFields": missing})
        booking = await Booking.find_one(
            Booking.reference_number == reference_number.strip().upper(),
            Booking.customer_email == email.strip().lower(),
        )
        if booking is None:
            raise ResourceNotFound("Booking")
        return {
            "referenceNumber": booking.reference_number,
            "customerName": booking.customer_name,
            "tourName": booking.tour_name,
            "departureDate": booking.departure_date.isoformat() if booking.departure_date else None,
            "numberOfTravelers": booking.number_of_travelers,
            "status": booking.status.value,
            "statusMessage": BOOKING_STATUS_MESSAGES[booking.status],
            "paymentStatus": booking.payment_status.value,
            "comments": [
                {"text": c.text, "createdAt": c.created_at.isoformat()}
                for c in booking.comments if c.is_visible_to_customer
            ],
            "createdAt": booking.created_at.isoformat(),
        }

    async def upload_applicant_document(self, reference_number: str, email: str, document_type: str,
                                        upload: UploadFile,
                                        context: Optional[RequestContext] = None) -> Dict[str, Any]:
        application = await self.find_application(reference_number, email)
        document = await document_service.store_applicant_upload(application, document_type, upload, context)
        return self._document_receipt(application, document)

    async def submit_document_url(self, reference_number: str, email: str, document_type: str, url: str,
                                  public_id: Optional[str], context: Optional[RequestContext] = None,
                                  original_name: Optional[str] = None, file_size: Optional[int] = None,
                                  mime_type: Optional[str] = None) -> Dict[str, Any]:
        application = await self.find_application(reference_number, email)
        document = await document_service.register_remote_document(
            application, document_type, url, public_id, context,
            original_name=original_name, file_size=file_size, mime_type=mime_type,
        )
        return self._document_receipt(application, document)

    @staticmethod
    def _document_receipt(application: Application, document: ApplicationDocument) -> Dict[str, Any]:
        return {
            "id": str(document.id),
            "referenceNumber": application.reference_number,
            "documentType": document.document_type.value,
            "status": document.status.value,
            "originalName": document.original_name,
            "uploadedAt": document.created_at.isoformat(),
        }


intake_service = IntakeService()
