import logging

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import FileResponse, RedirectResponse

from agency_backend.core.auth_dependencies import get_request_context, require_role
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_document, success_response
from agency_backend.schemas.document_schema import DocumentStatusUpdate, DocumentUploadRequest
from agency_backend.schemas.enums import StaffRole
from agency_backend.services.application_service import application_service
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.document_service import document_service
from agency_backend.services.workflow_service import workflow_service

router = APIRouter(prefix="/api/documents", tags=["Documents"])

logger = logging.getLogger(__name__)

SA = StaffRole.SUPER_ADMIN
VO = StaffRole.VISA_OFFICER
FO = StaffRole.FINANCE_OFFICER
REVIEWER = StaffRole.REVIEWER


# Staff upload; refused on locked applications and followed by status derivation
@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_documents(
    application_id: str = Form(..., alias="applicationId"),
    form: DocumentUploadRequest = Depends(),
    current_user: StaffUser = Depends(require_role(SA, VO)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    documents = await document_service.upload_documents(
        application, form.document_type, form.files, current_user, context,
        expiry_date=form.expiry_date, notes=form.notes, enforce_lock=True, derive_status=True,
    )
    return success_response([serialize_document(d) for d in documents],
                            f"{len(documents)} document(s) uploaded")


@router.get("/application/{application_id}")
async def list_application_documents(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    documents = await document_service.list_for_application(application)
    return success_response([serialize_document(d) for d in documents])


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    return success_response(serialize_document(await document_service.get_document(document_id)))


# Reviews a document and re-derives the owning application's status
@router.put("/{document_id}/status")
async def update_document_status(
    document_id: str,
    body: DocumentStatusUpdate,
    current_user: StaffUser = Depends(require_role(SA, VO)),
    context: RequestContext = Depends(get_request_context),
):
    document = await document_service.get_document(document_id)
    document = await workflow_service.update_document_status(
        document, body.status, current_user, rejection_reason=body.rejection_reason, context=context,
        notes=body.notes, derive_status=True,
    )
    return success_response(serialize_document(document), "Document status updated")


@router.get("/{document_id}/download")
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
