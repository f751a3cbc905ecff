import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import FileResponse, RedirectResponse

from agency_backend.core.auth_dependencies import get_request_context, require_role
from agency_backend.core.rate_limit import api_limiter
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_document, success_response
from agency_backend.schemas.application_schema import (
    ApplicationCreate,
    AssignOfficer,
    NoteCreate,
    ReopenRequest,
    StatusUpdate,
)
from agency_backend.schemas.document_schema import DocumentStatusUpdate, DocumentUploadRequest
from agency_backend.schemas.enums import StaffRole
from agency_backend.services.application_service import application_service, serialize_application
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.document_service import document_service
from agency_backend.services.workflow_service import workflow_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/api", tags=["Admin Applications"], dependencies=[Depends(api_limiter)])

SA = StaffRole.SUPER_ADMIN
VO = StaffRole.VISA_OFFICER
FO = StaffRole.FINANCE_OFFICER
REVIEWER = StaffRole.REVIEWER


@router.post("/applications", status_code=status.HTTP_201_CREATED)
async def create_application(
    body: ApplicationCreate,
    current_user: StaffUser = Depends(require_role(SA, VO, FO)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.create_application(body, current_user, context)
    return success_response(serialize_application(application), "Application created")


@router.get("/applications")
async def list_applications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    visa_type: Optional[str] = Query(None, alias="visaType"),
    assigned_officer: Optional[str] = Query(None, alias="assignedOfficer"),
    search: Optional[str] = None,
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    result = await application_service.list_applications(
        current_user, page, limit, status_filter, visa_type, assigned_officer, search, sort_by, sort_order,
    )
    return success_response(result)


# Registered before /applications/{application_id} so "stats" is not taken for an id
@router.get("/applications/stats")
async def application_stats(current_user: StaffUser = Depends(require_role(SA, VO, FO))):
    return success_response(await application_service.get_stats(current_user))


@router.get("/applications/{application_id}")
async def get_application(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    return success_response(await application_service.get_detail(application))


@router.patch("/applications/{application_id}/status")
async def update_application_status(
    application_id: str,
    body: StatusUpdate,
    current_user: StaffUser = Depends(require_role(SA, VO, REVIEWER)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    application = await workflow_service.update_application_status(
        application, body.status, current_user, comment=body.comment, context=context,
    )
    return success_response(serialize_application(application), "Application status updated")


@router.patch("/applications/{application_id}/assign")
async def assign_officer(
    application_id: str,
    body: AssignOfficer,
    current_user: StaffUser = Depends(require_role(SA)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application = await workflow_service.assign_officer(application, body.officer_id, current_user, context)
    return success_response(serialize_application(application), "Officer assigned")


@router.post("/applications/{application_id}/notes", status_code=status.HTTP_201_CREATED)
async def add_note(
    application_id: str,
    body: NoteCreate,
    current_user: StaffUser = Depends(require_role(SA, VO, REVIEWER)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    application = await application_service.add_note(application, body.note, current_user, context)
    return success_response(serialize_application(application), "Note added")


@router.post("/applications/{application_id}/reopen")
async def reopen_application(
    application_id: str,
    body: Optional[ReopenRequest] = None,
    current_user: StaffUser = Depends(require_role(SA)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application = await workflow_service.reopen_application(
        application, current_user, context, reason=body.reason if body else None,
    )
    return success_response(serialize_application(application), "Application reopened")


@router.delete("/applications/{application_id}")
async def delete_application(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    result = await application_service.delete_application(application, current_user, context)
    return success_response(result, "Application deleted")


@router.post("/applications/{application_id}/documents", status_code=status.HTTP_201_CREATED)
async def upload_documents(
    application_id: str,
    form: DocumentUploadRequest = Depends(),
    current_user: StaffUser = Depends(require_role(SA, VO)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    documents = await document_service.upload_documents(
        application, form.document_type, form.files, current_user, context,
        expiry_date=form.expiry_date, notes=form.notes,
    )
    return success_response([serialize_document(d) for d in documents],
                            f"{len(documents)} document(s) uploaded")


@router.get("/applications/{application_id}/documents")
async def list_application_documents(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    documents = await document_service.list_for_application(application)
    return success_response([serialize_document(d) for d in documents])


# Verified documents whose expiry date falls within the next ``days`` days
@router.get("/documents/expiring")
async def expiring_documents(
    days: int = Query(30, ge=1, le=365),
    current_user: StaffUser = Depends(require_role(SA, VO)),
):
    documents = await document_service.expiring_documents(days)
    return success_response([serialize_document(d) for d in documents])


@router.get("/documents/{document_id}/download")
async def download_document(
    document_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
    context: RequestContext = Depends(get_request_context),
):
    document = await document_service.get_document(document_id)
    target = await document_service.prepare_download(document, current_user, context)
    if target.redirect_url:
        return RedirectResponse(target.redirect_url)
    return FileResponse(target.path, filename=target.file_name, media_type=target.mime_type)


@router.patch("/documents/{document_id}/status")
async def update_document_status(
    document_id: str,
    body: DocumentStatusUpdate,
    current_user: StaffUser = Depends(require_role(SA, VO)),
    context: RequestContext = Depends(get_request_context),
):
    document = await document_service.get_document(document_id)
    document = await workflow_service.update_document_status(
        document, body.status, current_user, rejection_reason=body.rejection_reason, context=context,
        notes=body.notes,
    )
    return success_response(serialize_document(document), "Document status updated")


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    current_user: StaffUser = Depends(require_role(SA)),
    context: RequestContext = Depends(get_request_context),
):
    document = await document_service.get_document(document_id)
    await document_service.delete_document(document, current_user, context)
    return success_response(message="Document deleted")
