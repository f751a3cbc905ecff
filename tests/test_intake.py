from types import SimpleNamespace

import pytest

from agency_backend.core.exceptions import MalformedPayload
from agency_backend.database.models import Application, ApplicationDocument, ApplicationTimeline
from agency_backend.schemas.enums import AuditAction, DocumentSource
from agency_backend.services.intake_service import APPLICATION_EXAMPLE, parse_lenient_json
from agency_backend.utils import reference_numbers
from agency_backend.utils.reference_numbers import generate_reference
from tests.utils import audit_records, pdf_file

APPLICATION = {
    "applicantName": "Jane Doe",
    "email": "Jane@Example.com",
    "visaType": "Tourist Visa",
    "travelPurpose": "Tourism",
}


async def submit(client, payload=None, content=None):
    if content is not None:
        return await client.post("/api/public/applications", content=content,
                                 headers={"Content-Type": "application/json"})
    return await client.post("/api/public/applications", json=payload or APPLICATION)


@pytest.mark.parametrize(
    "raw",
    [
        '{"applicantName": "Jane"}',
        "{'applicantName': 'Jane'}",
        "{applicantName: 'Jane'}",
        '{applicantName: "Jane"}',
    ],
)
def test_parse_lenient_json_repairs_common_mistakes(raw):
    assert parse_lenient_json(raw, APPLICATION_EXAMPLE) == {"applicantName": "Jane"}


@pytest.mark.parametrize("raw", ["{applicantName: ", "[1, 2, 3]", "", b"not json at all"])
def test_parse_lenient_json_gives_up_with_an_example(raw):
    with pytest.raises(MalformedPayload) as exc:
        parse_lenient_json(raw, APPLICATION_EXAMPLE)
    assert exc.value.details["example"] == APPLICATION_EXAMPLE


def test_references_are_unique_within_a_millisecond():
    references = {generate_reference("FAF") for _ in range(500)}
    assert len(references) == 500
    assert all(ref.startswith("FAF-") and len(ref) == 10 for ref in references)


@pytest.fixture
def pinned_clock(monkeypatch):
    monkeypatch.setattr(reference_numbers, "time", SimpleNamespace(time=lambda: 1_700_000_123.4565))
    monkeypatch.setattr(reference_numbers, "_last_millis", {})

    def restart():
        monkeypatch.setattr(reference_numbers, "_last_millis", {})

    return restart


async def test_reused_reference_is_replaced_on_insert(client, pinned_clock):
    first = await submit(client)
    pinned_clock()
    second = await submit(client)

    assert first.status_code == second.status_code == 201
    assert first.json()["data"]["referenceNumber"] == "FAF-123456"
    assert second.json()["data"]["referenceNumber"] == "FAF-123457"
    assert await Application.find({}).count() == 2


async def test_reused_booking_reference_is_replaced_on_insert(client, pinned_clock):
    booking = {"customerName": "Kwame Mensah", "customerEmail": "kwame@example.com", "tourName": "Kakum Canopy Walk"}
    first = await client.post("/api/public/bookings", json=booking)
    pinned_clock()
    second = await client.post("/api/public/bookings", json=booking)

    assert first.status_code == second.status_code == 201
    assert first.json()["data"]["referenceNumber"] != second.json()["data"]["referenceNumber"]


async def test_public_application_is_submitted_but_not_locked(client):
    response = await submit(client)

    assert response.status_code == 201
    receipt = response.json()["data"]
    assert receipt["status"] == "Submitted"
    assert receipt["referenceNumber"].startswith("FAF-")
    stored = await Application.find_one(Application.reference_number == receipt["referenceNumber"])
    assert stored.applicant_email == "jane@example.com"
    assert stored.source.value == "website"
    assert stored.submitted_at is not None
    assert stored.locked is False
    timeline = await ApplicationTimeline.find(ApplicationTimeline.application_id == stored.id).to_list()
    assert timeline[0].performed_by_label == "Public Website"
    audits = await audit_records(AuditAction.APPLICATION_CREATED)
    assert audits[0].actor_label == "Public Website"
    assert audits[0].user_id is None


async def test_single_quoted_body_is_accepted(client):
    body = "{'applicantName': 'Jane Doe', 'email': 'jane@example.com', 'visaType': 'Student Visa', " \
           "'travelPurpose': 'Study'}"
    response = await submit(client, content=body)
    assert response.status_code == 201


async def test_irreparable_body_returns_malformed_json(client):
    response = await submit(client, content="{applicantName: 'Jane'")

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "MALFORMED_JSON"
    assert body["example"] == APPLICATION_EXAMPLE
    assert body["received"] == "{applicantName: 'Jane'"


async def test_missing_fields_are_listed(client):
    response = await submit(client, {"applicantName": "Jane Doe", "email": "jane@example.com"})

    assert response.status_code == 400
    assert response.json()["missingFields"] == ["visaType", "travelPurpose"]
    assert await Application.find({}).count() == 0


async def test_applicant_email_alias_and_draft_status(client):
    payload = {**APPLICATION, "applicantEmail": "alias@example.com", "status": "draft"}
    del payload["email"]

    response = await submit(client, payload)

    assert response.status_code == 201
    stored = await Application.find_one({})
    assert stored.applicant_email == "alias@example.com"
    assert stored.status.value == "Draft"
    assert stored.submitted_at is None


async def test_public_submission_cannot_choose_a_decision_status(client):
    response = await submit(client, {**APPLICATION, "status": "Approved"})
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATUS"


async def test_status_lookup_is_case_insensitive(client):
    reference = (await submit(client)).json()["data"]["referenceNumber"]

    response = await client.get("/api/public/applications/status",
                                params={"referenceNumber": reference.lower(), "email": "JANE@example.com"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "Submitted"
    assert data["statusMessage"]
    assert data["documents"] == []


async def test_status_lookup_requires_a_matching_email(client):
    reference = (await submit(client)).json()["data"]["referenceNumber"]

    wrong = await client.get("/api/public/applications/status",
                             params={"referenceNumber": reference, "email": "someone@else.com"})
    missing = await client.get("/api/public/applications/status", params={"referenceNumber": reference})

    assert wrong.status_code == 404
    assert missing.status_code == 400
    assert missing.json()["missingFields"] == ["email"]


@pytest.mark.parametrize("url", ["/api/public/documents/upload", "/api/upload/visa-document",
                                 "/api/public/upload/visa-document"])
async def test_applicant_document_upload(client, url):
    reference = (await submit(client)).json()["data"]["referenceNumber"]

    response = await client.post(
        url,
        data={"referenceNumber": reference, "email": "jane@example.com", "documentType": "passport"},
        files={"document": pdf_file()},
    )

    assert response.status_code == 201
    assert response.json()["data"]["documentType"] == "Passport"
    document = await ApplicationDocument.find_one({})
    assert document.source == DocumentSource.UPLOAD
    assert document.uploaded_by_label == "Applicant: Jane Doe"
    application = await Application.find_one({})
    assert application.documents == [document.id]


async def test_applicant_upload_rejects_unknown_file_types(client):
    reference = (await submit(client)).json()["data"]["referenceNumber"]

    response = await client.post(
        "/api/public/documents/upload",
        data={"referenceNumber": reference, "email": "jane@example.com", "documentType": "Passport"},
        files={"document": ("script.exe", b"MZ", "application/octet-stream")},
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_FILE_TYPE"
    assert await ApplicationDocument.find({}).count() == 0


async def test_applicant_upload_lists_missing_fields(client):
    response = await client.post("/api/public/documents/upload", data={"email": "jane@example.com"})
    assert response.status_code == 400
    assert response.json()["missingFields"] == ["document", "referenceNumber", "documentType"]


async def test_document_url_submission(client):
    reference = (await submit(client)).json()["data"]["referenceNumber"]
    body = (
        "{referenceNumber: '%s', email: 'jane@example.com', documentType: 'Bank Statement', "
        "cloudinaryUrl: 'https://res.cloudinary.com/demo/image/upload/statement.pdf', "
        "cloudinaryPublicId: 'demo/statement'}" % reference
    )

    response = await client.post("/api/public/documents/url-submit", content=body,
                                 headers={"Content-Type": "application/json"})

    assert response.status_code == 201
    document = await ApplicationDocument.find_one({})
    assert document.source == DocumentSource.CLOUDINARY
    assert document.remote_public_id == "demo/statement"
    assert document.uploaded_by_label.startswith("External System")


async def test_document_url_submission_requires_fields(client):
    response = await client.post("/api/public/documents/url-submit", json={"email": "jane@example.com"})
    assert response.status_code == 400
    assert "cloudinaryUrl" in response.json()["missingFields"]


async def test_public_booking_and_status(client):
    response = await client.post(
        "/api/public/bookings",
        content="{customerName: 'Kwame Mensah', customerEmail: 'Kwame@Example.com', tourName: 'Cape Coast Castle', "
                "numberOfTravelers: 3}",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 201
    receipt = response.json()["data"]
    assert receipt["referenceNumber"].startswith("BK-")
    assert receipt["status"] == "Pending"

    status = await client.get("/api/public/bookings/status",
                              params={"referenceNumber": receipt["referenceNumber"], "email": "kwame@example.com"})
    assert status.status_code == 200
    assert status.json()["data"]["numberOfTravelers"] == 3
    assert status.json()["data"]["comments"] == []


async def test_public_booking_missing_fields(client):
    response = await client.post("/api/public/bookings", json={"customerName": "Kwame"})
    assert response.status_code == 400
    assert response.json()["missingFields"] == ["customerEmail", "tourName"]
