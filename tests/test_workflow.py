import pytest

from agency_backend.core.exceptions import (
    InsufficientRole,
    InvalidStatus,
    LockedApplication,
    MissingReason,
    ResourceNotFound,
)
from agency_backend.database.models import Application, ApplicationDocument, ApplicationTimeline, Booking
from agency_backend.schemas.enums import (
    ApplicationStatus,
    AuditAction,
    BookingStatus,
    DocumentStatus,
    DocumentType,
    PaymentStatus,
    StaffRole,
    TimelineAction,
)
from agency_backend.services.workflow_service import (
    check_status_change,
    derive_application_status,
    parse_status,
    workflow_service,
)
from tests.utils import audit_records

S = ApplicationStatus
D = DocumentStatus


async def make_application(**overrides) -> Application:
    fields = dict(
        applicant_name="Jane Doe",
        applicant_email="jane@example.com",
        visa_type="Tourist Visa",
        reference_number=f"FAF-{await Application.find({}).count() + 100000}",
    )
    fields.update(overrides)
    application = Application(**fields)
    await application.insert()
    return application


async def add_document(application: Application, status=D.UPLOADED) -> ApplicationDocument:
    document = ApplicationDocument(
        application_id=application.id,
        document_type=DocumentType.PASSPORT,
        file_path=f"{application.id}/passport.pdf",
        status=status,
    )
    await document.insert()
    return document


# --- pure rules -------------------------------------------------------------

def test_invalid_status_is_checked_before_the_lock():
    application = Application(applicant_name="A", applicant_email="a@x.com", visa_type="T",
                              reference_number="FAF-1", locked=True)
    with pytest.raises(InvalidStatus) as exc:
        check_status_change(application, "Lost", StaffRole.SUPER_ADMIN)
    assert "Draft" in exc.value.details["validStatuses"]


def test_locked_application_only_allows_withdrawal():
    application = Application(applicant_name="A", applicant_email="a@x.com", visa_type="T",
                              reference_number="FAF-1", locked=True)
    with pytest.raises(LockedApplication):
        check_status_change(application, "Under Review", StaffRole.SUPER_ADMIN)
    assert check_status_change(application, "Withdrawn", StaffRole.VISA_OFFICER) == S.WITHDRAWN


def test_lock_is_checked_before_reviewer_restriction():
    application = Application(applicant_name="A", applicant_email="a@x.com", visa_type="T",
                              reference_number="FAF-1", locked=True)
    with pytest.raises(LockedApplication):
        check_status_change(application, "Approved", StaffRole.REVIEWER)


@pytest.mark.parametrize("target", ["Approved", "Rejected"])
def test_reviewer_cannot_decide(target):
    application = Application(applicant_name="A", applicant_email="a@x.com", visa_type="T",
                              reference_number="FAF-1")
    with pytest.raises(InsufficientRole):
        check_status_change(application, target, StaffRole.REVIEWER)
    assert check_status_change(application, "Queried", StaffRole.REVIEWER) == S.QUERIED


def test_parse_status_accepts_legacy_spellings_and_restricts_to_allowed():
    assert parse_status(ApplicationStatus, "under_review") == S.UNDER_REVIEW
    with pytest.raises(InvalidStatus):
        parse_status(ApplicationStatus, "Approved", [S.DRAFT, S.SUBMITTED])


@pytest.mark.parametrize(
    "current, documents, expected",
    [
        (S.SUBMITTED, [], None),
        (S.UNDER_REVIEW, [D.VERIFIED, D.REJECTED], S.QUERIED),
        (S.QUERIED, [D.REUPLOAD_REQUIRED], None),
        (S.DRAFT, [D.UPLOADED, D.VERIFIED], S.UNDER_REVIEW),
        (S.SUBMITTED, [D.UPLOADED], None),
        (S.UNDER_REVIEW, [D.UPLOADED], None),
        (S.QUERIED, [D.UPLOADED], S.UNDER_REVIEW),
        (S.UNDER_REVIEW, [D.VERIFIED, D.VERIFIED], S.APPROVED),
        (S.APPROVED, [D.VERIFIED], None),
        (S.REJECTED, [D.VERIFIED], None),
    ],
)
def test_derive_application_status(current, documents, expected):
    assert derive_application_status(current, documents) == expected


# --- persisted operations -------------------------------------------------------

async def test_first_submission_locks_and_records_history(super_admin):
    application = await make_application()

    await workflow_service.update_application_status(application, "Submitted", super_admin)

    stored = await Application.get(application.id)
    assert stored.status == S.SUBMITTED
    assert stored.locked is True
    assert stored.submitted_at is not None
    timeline = await ApplicationTimeline.find(ApplicationTimeline.application_id == application.id).to_list()
    assert [t.action for t in timeline] == [TimelineAction.SUBMITTED]
    assert timeline[0].previous_status == "Draft"
    audits = await audit_records(AuditAction.APPLICATION_STATUS_CHANGED)
    assert len(audits) == 1
    assert audits[0].metadata["newStatus"] == "Submitted"


async def test_locked_application_can_still_be_withdrawn(visa_officer):
    application = await make_application(status=S.SUBMITTED, locked=True)

    with pytest.raises(LockedApplication):
        await workflow_service.update_application_status(application, "Approved", visa_officer)
    await workflow_service.update_application_status(application, "Withdrawn", visa_officer)

    stored = await Application.get(application.id)
    assert stored.status == S.WITHDRAWN
    assert stored.locked is True


async def test_rejected_document_status_change_is_atomic(visa_officer):
    application = await make_application()
    document = await add_document(application)

    with pytest.raises(MissingReason):
        await workflow_service.update_document_status(document, "Rejected", visa_officer, rejection_reason="   ")

    stored = await ApplicationDocument.get(document.id)
    assert stored.status == D.UPLOADED
    assert await audit_records(AuditAction.DOCUMENT_STATUS_CHANGED) == []


async def test_verifying_a_document_records_reviewer(visa_officer):
    application = await make_application()
    document = await add_document(application)

    await workflow_service.update_document_status(document, "Verified", visa_officer)

    stored = await ApplicationDocument.get(document.id)
    assert stored.status == D.VERIFIED
    assert stored.verified_by == visa_officer.id
    assert stored.verified_at is not None


async def test_read_only_cannot_review_documents(read_only):
    application = await make_application()
    document = await add_document(application)
    with pytest.raises(InsufficientRole):
        await workflow_service.update_document_status(document, "Verified", read_only)

    denials = await audit_records(AuditAction.FORBIDDEN_ACCESS_ATTEMPT)
    assert [d.status_code for d in denials] == [403]
    assert (await ApplicationDocument.get(document.id)).status == D.UPLOADED


async def test_document_status_must_be_a_review_outcome(visa_officer):
    application = await make_application()
    document = await add_document(application)
    with pytest.raises(InvalidStatus):
        await workflow_service.update_document_status(document, "Uploaded", visa_officer)


async def test_derivation_is_idempotent_and_ignores_the_lock(visa_officer):
    application = await make_application(status=S.SUBMITTED, locked=True)
    document = await add_document(application)

    await workflow_service.update_document_status(document, "Rejected", visa_officer,
                                                  rejection_reason="Blurry scan", derive_status=True)
    assert (await Application.get(application.id)).status == S.QUERIED
    assert (await ApplicationDocument.get(document.id)).rejection_reason == "Blurry scan"

    assert await workflow_service.derive_status_from_documents(application.id) is None
    derived = await ApplicationTimeline.find(
        {"application_id": application.id, "performed_by_label": "System"}
    ).to_list()
    assert len(derived) == 1


async def test_all_verified_documents_approve_the_application(visa_officer):
    application = await make_application(status=S.UNDER_REVIEW)
    first = await add_document(application)
    second = await add_document(application)

    await workflow_service.update_document_status(first, "Verified", visa_officer, derive_status=True)
    assert (await Application.get(application.id)).status == S.UNDER_REVIEW
    await workflow_service.update_document_status(second, "Verified", visa_officer, derive_status=True)
    assert (await Application.get(application.id)).status == S.APPROVED


async def test_assign_officer_rejects_read_only_staff(super_admin, read_only, visa_officer):
    application = await make_application()

    with pytest.raises(ResourceNotFound):
        await workflow_service.assign_officer(application, str(read_only.id), super_admin)

    await workflow_service.assign_officer(application, str(visa_officer.id), super_admin)
    assert (await Application.get(application.id)).assigned_officer == visa_officer.id


async def test_reopen_is_super_admin_only(super_admin, visa_officer):
    application = await make_application(status=S.SUBMITTED, locked=True)

    with pytest.raises(InsufficientRole):
        await workflow_service.reopen_application(application, visa_officer)
    assert len(await audit_records(AuditAction.FORBIDDEN_ACCESS_ATTEMPT)) == 1
    await workflow_service.reopen_application(application, super_admin, reason="Applicant asked for a correction")

    stored = await Application.get(application.id)
    assert stored.locked is False
    assert stored.status == S.SUBMITTED
    assert len(await audit_records(AuditAction.APPLICATION_REOPENED)) == 1


async def test_booking_confirmation_timestamp_is_set_once(finance_officer):
    booking = Booking(customer_name="Kwame", customer_email="kwame@example.com", tour_name="Cape Coast",
                      reference_number="BK-000001")
    await booking.insert()

    await workflow_service.update_booking_status(booking, "Confirmed", finance_officer)
    first_confirmed = booking.confirmed_at
    await workflow_service.update_booking_status(booking, "Pending", finance_officer)
    await workflow_service.update_booking_status(booking, "Confirmed", finance_officer)

    assert first_confirmed is not None
    assert booking.confirmed_at == first_confirmed
    assert booking.cancelled_at is None
    with pytest.raises(InvalidStatus):
        await workflow_service.update_booking_status(booking, "Lost", finance_officer)


async def test_payment_status_update(finance_officer):
    booking = Booking(customer_name="Kwame", customer_email="kwame@example.com", tour_name="Cape Coast",
                      reference_number="BK-000002")
    await booking.insert()

    await workflow_service.update_payment_status(booking, "paid", finance_officer)

    assert (await Booking.get(booking.id)).payment_status == PaymentStatus.PAID
    assert (await audit_records(AuditAction.BOOKING_PAYMENT_UPDATED))[0].metadata["newPaymentStatus"] == "paid"
    assert booking.status == BookingStatus.PENDING
