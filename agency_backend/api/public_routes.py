"""Unauthenticated routes called by the public website."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import ValidationError

from agency_backend.core.auth_dependencies import get_request_context
from agency_backend.core.exceptions import ValidationFailed
from agency_backend.core.rate_limit import api_limiter
from agency_backend.helpers.response_builder import success_response
from agency_backend.schemas.document_schema import DocumentUrlSubmission, PublicDocumentUploadRequest
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.intake_service import (
    APPLICATION_EXAMPLE,
    BOOKING_EXAMPLE,
    DOCUMENT_URL_EXAMPLE,
    intake_service,
    parse_lenient_json,
    require_fields,
    validation_details,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Public"], dependencies=[Depends(api_limiter)])


@router.post("/public/applications", status_code=status.HTTP_201_CREATED)
async def submit_application(request: Request, context: RequestContext = Depends(get_request_context)):
    payload = parse_lenient_json(await request.body(), APPLICATION_EXAMPLE)
    receipt = await intake_service.submit_application(payload, context)
    return success_response(receipt, "Application submitted successfully")


@router.get("/public/applications/status")
async def application_status(
    reference_number: Optional[str] = Query(None, alias="referenceNumber"),
    email: Optional[str] = None,
):
    return success_response(await intake_service.application_status(reference_number, email))


async def _store_upload(form: PublicDocumentUploadRequest, context: RequestContext):
    missing = form.missing_fields()
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}",
                               details={"missingFields": missing})
    receipt = await intake_service.upload_applicant_document(
        form.reference_number, form.email, form.document_type, form.file, context,
    )
    return success_response(receipt, "Document uploaded successfully")


@router.post("/public/documents/upload", status_code=status.HTTP_201_CREATED)
async def upload_document(
    form: PublicDocumentUploadRequest = Depends(),
    context: RequestContext = Depends(get_request_context),
):
    return await _store_upload(form, context)


# Older website builds still post here
@router.post("/upload/visa-document", status_code=status.HTTP_201_CREATED)
@router.post("/public/upload/visa-document", status_code=status.HTTP_201_CREATED)
async def upload_visa_document(
    form: PublicDocumentUploadRequest = Depends(),
    context: RequestContext = Depends(get_request_context),
):
    return await _store_upload(form, context)


# Registers a document the website already stored with Cloudinary
@router.post("/public/documents/url-submit", status_code=status.HTTP_201_CREATED)
async def submit_document_url(request: Request, context: RequestContext = Depends(get_request_context)):
    payload = parse_lenient_json(await request.body(), DOCUMENT_URL_EXAMPLE)
    require_fields(payload, list(DOCUMENT_URL_EXAMPLE), DOCUMENT_URL_EXAMPLE)
    try:
        body = DocumentUrlSubmission.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailed("Invalid document submission", details={"errors": validation_details(e)})
    receipt = await intake_service.submit_document_url(
        body.reference_number, body.email, body.document_type, body.cloudinary_url, body.cloudinary_public_id,
        context, original_name=body.original_name, file_size=body.file_size, mime_type=body.mime_type,
    )
    return success_response(receipt, "Document registered successfully")


@router.post("/public/bookings", status_code=status.HTTP_201_CREATED)
async def submit_booking(request: Request, context: RequestContext = Depends(get_request_context)):
    payload = parse_lenient_json(await request.body(), BOOKING_EXAMPLE)
    receipt = await intake_service.submit_booking(payload, context)
    return success_response(receipt, "Booking submitted successfully")


@router.get("/public/bookings/status")
async def booking_status(
    reference_number: Optional[str] = Query(None, alias="referenceNumber"),
    email: Optional[str] = None,
):
    return success_response(await intake_service.booking_status(reference_number, email))
