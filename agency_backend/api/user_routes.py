from typing import Optional

from fastapi import APIRouter, Depends, Query

from agency_backend.core.auth_dependencies import get_request_context, require_role
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_user, success_response
from agency_backend.schemas.enums import StaffRole
from agency_backend.schemas.user_schemas import StaffUserUpdate
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.user_service import user_service

router = APIRouter(prefix="/api/users", tags=["Users"])

super_admin_only = require_role(StaffRole.SUPER_ADMIN)


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    current_user: StaffUser = Depends(super_admin_only),
):
    return success_response(await user_service.list_users(page, limit, role, is_active))


@router.get("/{user_id}")
async def get_user(user_id: str, current_user: StaffUser = Depends(super_admin_only)):
    return success_response(serialize_user(await user_service.get_user(user_id)))


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: StaffUserUpdate,
    current_user: StaffUser = Depends(super_admin_only),
    context: RequestContext = Depends(get_request_context),
):
    target = await user_service.get_user(user_id)
    user = await user_service.update_user(target, body, current_user, context)
    return success_response(serialize_user(user), "User updated")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    current_user: StaffUser = Depends(super_admin_only),
    context: RequestContext = Depends(get_request_context),
):
    target = await user_service.get_user(user_id)
    await user_service.delete_user(target, current_user, context)
    return success_response(message="User deleted")
