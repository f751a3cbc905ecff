from agency_backend.database.models.user_model import StaffUser, RefreshTokenEntry
from agency_backend.database.models.application_model import Application, Comment, InternalNote, TravelDates
from agency_backend.database.models.document_model import ApplicationDocument
from agency_backend.database.models.booking_model import Booking, BookingComment, BookingNote
from agency_backend.database.models.audit_log_model import AuditLog
from agency_backend.database.models.timeline_model import ApplicationTimeline

DOCUMENT_MODELS = [StaffUser, Application, ApplicationDocument, Booking, AuditLog, ApplicationTimeline]

__all__ = [
    "StaffUser",
    "RefreshTokenEntry",
    "Application",
    "Comment",
    "InternalNote",
    "TravelDates",
    "ApplicationDocument",
    "Booking",
    "BookingComment",
    "BookingNote",
    "AuditLog",
    "ApplicationTimeline",
    "DOCUMENT_MODELS",
]
