from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from agency_backend.core.auth_dependencies import get_request_context, require_role
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import success_response
from agency_backend.schemas.application_schema import (
    ApplicationCreate,
    ApplicationUpdate,
    BulkDeleteRequest,
    CommentCreate,
    NoteCreate,
)
from agency_backend.schemas.enums import StaffRole
from agency_backend.services.application_service import application_service, serialize_application
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.workflow_service import workflow_service

router = APIRouter(prefix="/api/applications", tags=["Applications"])

SA = StaffRole.SUPER_ADMIN
VO = StaffRole.VISA_OFFICER
FO = StaffRole.FINANCE_OFFICER
REVIEWER = StaffRole.REVIEWER


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_application(
    body: ApplicationCreate,
    current_user: StaffUser = Depends(require_role(SA, VO, FO)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.create_application(body, current_user, context)
    return success_response(serialize_application(application), "Application created")


@router.get("")
async def list_applications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    visa_type: Optional[str] = Query(None, alias="visaType"),
    search: Optional[str] = None,
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    result = await application_service.list_applications(
        current_user, page, limit, status_filter, visa_type, None, search, sort_by, sort_order,
    )
    return success_response(result)


@router.get("/stats")
async def application_stats(current_user: StaffUser = Depends(require_role(SA, VO, FO))):
    return success_response(await application_service.get_stats(current_user))


# Deletes every listed application the caller created (any of them for a Super Admin)
@router.delete("/bulk/delete")
async def bulk_delete_applications(
    body: BulkDeleteRequest,
    current_user: StaffUser = Depends(require_role(SA, VO, FO)),
    context: RequestContext = Depends(get_request_context),
):
    result = await application_service.bulk_delete(body.ids, current_user, context)
    return success_response(result, f"{result['deletedCount']} application(s) deleted")


@router.get("/{application_id}")
async def get_application(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO, FO, REVIEWER)),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    return success_response(await application_service.get_detail(application))


@router.put("/{application_id}")
async def update_application(
    application_id: str,
    body: ApplicationUpdate,
    current_user: StaffUser = Depends(require_role(SA, VO)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    application = await application_service.update_application(application, body, current_user, context)
    return success_response(serialize_application(application), "Application updated")


@router.delete("/{application_id}")
async def delete_application(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    result = await application_service.delete_application(application, current_user, context)
    return success_response(result, "Application deleted")


@router.post("/{application_id}/submit")
async def submit_application(
    application_id: str,
    current_user: StaffUser = Depends(require_role(SA, VO)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    application = await workflow_service.submit_application(application, current_user, context)
    return success_response(serialize_application(application), "Application submitted")


@router.post("/{application_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    application_id: str,
    body: CommentCreate,
    current_user: StaffUser = Depends(require_role(SA, VO, REVIEWER)),
    context: RequestContext = Depends(get_request_context),
):
    application = await application_service.get_application(application_id)
    application_service.ensure_can_access(application, current_user)
    application = await application_service.add_comment(
        application, body.text, body.is_visible_to_applicant, current_user, context,
    )
    return success_response(serialize_application(application), "Comment added")


@router.post("/{application_id}/notes", status_code=status.HTTP_201_CREATED)
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
