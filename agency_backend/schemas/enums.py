import re
from enum import Enum


def _normalize(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", value.lower())


class _LenientEnum(str, Enum):
    """Accepts legacy spellings (``super_admin``, ``bank_statement``) of the canonical values."""

    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, str):
            return None
        key = _normalize(value)
        for member in cls:
            if _normalize(member.value) == key or _normalize(member.name) == key:
                return member
        return None


class StaffRole(_LenientEnum):
    SUPER_ADMIN = "Super Admin"
    VISA_OFFICER = "Visa Officer"
    FINANCE_OFFICER = "Finance Officer"
    REVIEWER = "Reviewer"
    READ_ONLY = "Read-only"


class ApplicationStatus(_LenientEnum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under Review"
    QUERIED = "Queried"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    WITHDRAWN = "Withdrawn"


class ApplicationSource(str, Enum):
    WEBSITE = "website"
    ADMIN = "admin"


class ApplicationPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class DocumentType(_LenientEnum):
    PASSPORT = "Passport"
    ID_CARD = "ID Card"
    VISA_APPLICATION_FORM = "Visa Application Form"
    PHOTO = "Photo"
    FLIGHT_ITINERARY = "Flight Itinerary"
    HOTEL_BOOKING_CONFIRMATION = "Hotel Booking Confirmation"
    TRAVEL_INSURANCE = "Travel Insurance"
    BANK_STATEMENT = "Bank Statement"
    EMPLOYMENT_LETTER = "Employment Letter"
    INVITATION_LETTER = "Invitation Letter"
    OTHER = "Other"


class DocumentStatus(_LenientEnum):
    UPLOADED = "Uploaded"
    VERIFIED = "Verified"
    REJECTED = "Rejected"
    REUPLOAD_REQUIRED = "Re-upload Required"

    @classmethod
    def _missing_(cls, value):
        # the admin surface calls freshly uploaded documents "Pending"
        if isinstance(value, str) and _normalize(value) == "pending":
            return cls.UPLOADED
        return super()._missing_(value)


class DocumentSource(str, Enum):
    UPLOAD = "upload"
    CLOUDINARY = "cloudinary"
    EXTERNAL = "external"


class BookingStatus(_LenientEnum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentStatus(_LenientEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class BookingSource(_LenientEnum):
    WEBSITE = "website"
    ADMIN = "admin"
    PHONE = "phone"
    WALK_IN = "walk-in"


class TimelineAction(str, Enum):
    CREATED = "Created"
    SUBMITTED = "Submitted"
    STATUS_CHANGED = "Status Changed"
    OFFICER_ASSIGNED = "Officer Assigned"
    NOTE_ADDED = "Note Added"
    COMMENT_ADDED = "Comment Added"
    DOCUMENT_UPLOADED = "Document Uploaded"
    DOCUMENT_STATUS_CHANGED = "Document Status Changed"
    DOCUMENT_DELETED = "Document Deleted"
    WITHDRAWN = "Withdrawn"
    REOPENED = "Reopened"


class AuditAction(str, Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    REFRESH_TOKEN = "REFRESH_TOKEN"
    PASSWORD_RESET_REQUEST = "PASSWORD_RESET_REQUEST"
    PASSWORD_RESET_COMPLETE = "PASSWORD_RESET_COMPLETE"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PASSWORD_CHANGE_FAILED = "PASSWORD_CHANGE_FAILED"
    UNAUTHORIZED_ACCESS_ATTEMPT = "UNAUTHORIZED_ACCESS_ATTEMPT"
    FORBIDDEN_ACCESS_ATTEMPT = "FORBIDDEN_ACCESS_ATTEMPT"
    PROFILE_UPDATE = "PROFILE_UPDATE"
    ADMIN_CREATED = "ADMIN_CREATED"
    ADMIN_UPDATED = "ADMIN_UPDATED"
    ADMIN_DELETED = "ADMIN_DELETED"
    ADMIN_ACTIVATED = "ADMIN_ACTIVATED"
    ADMIN_DEACTIVATED = "ADMIN_DEACTIVATED"
    APPLICATION_CREATED = "APPLICATION_CREATED"
    APPLICATION_UPDATED = "APPLICATION_UPDATED"
    APPLICATION_STATUS_CHANGED = "APPLICATION_STATUS_CHANGED"
    APPLICATION_OFFICER_ASSIGNED = "APPLICATION_OFFICER_ASSIGNED"
    APPLICATION_NOTE_ADDED = "APPLICATION_NOTE_ADDED"
    APPLICATION_COMMENT_ADDED = "APPLICATION_COMMENT_ADDED"
    APPLICATION_REOPENED = "APPLICATION_REOPENED"
    APPLICATION_DELETED = "APPLICATION_DELETED"
    DOCUMENTS_UPLOADED = "DOCUMENTS_UPLOADED"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_DOWNLOADED = "DOCUMENT_DOWNLOADED"
    DOCUMENT_STATUS_CHANGED = "DOCUMENT_STATUS_CHANGED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"
    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_UPDATED = "BOOKING_UPDATED"
    BOOKING_STATUS_CHANGED = "BOOKING_STATUS_CHANGED"
    BOOKING_PAYMENT_UPDATED = "BOOKING_PAYMENT_UPDATED"
    BOOKING_COMMENT_ADDED = "BOOKING_COMMENT_ADDED"
    BOOKING_NOTE_ADDED = "BOOKING_NOTE_ADDED"
    BOOKING_DELETED = "BOOKING_DELETED"
