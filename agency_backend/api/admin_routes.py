from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from agency_backend.core.auth_dependencies import get_current_user, get_rbac_policy, get_request_context, require_permission, require_role
from agency_backend.core.rate_limit import admin_limiter, api_limiter
from agency_backend.core.rbac import RbacPolicy
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_user, success_response
from agency_backend.schemas.base_schema import CamelModel
from agency_backend.schemas.enums import StaffRole
from agency_backend.schemas.user_schemas import StaffUserCreate, StaffUserUpdate
from agency_backend.services.application_service import application_service
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.booking_service import booking_service
from agency_backend.services.document_service import document_service
from agency_backend.services.user_service import user_service

router = APIRouter(
    prefix="/admin/api",
    tags=["Admin"],
    dependencies=[Depends(api_limiter)],
)


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)


@router.get("/profile")
async def get_profile(
    current_user: StaffUser = Depends(get_current_user),
    policy: RbacPolicy = Depends(get_rbac_policy),
):
    data = serialize_user(current_user)
    data["permissions"] = sorted(policy.permissions_for(current_user.role))
    return success_response(data)


@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    current_user: StaffUser = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    user = await user_service.update_profile(current_user, body.name, context)
    return success_response(serialize_user(user), "Profile updated")


# Summary figures for the landing page; each block is limited to what the role may read
@router.get("/dashboard")
async def get_dashboard(
    current_user: StaffUser = Depends(require_permission("dashboard:read")),
    policy: RbacPolicy = Depends(get_rbac_policy),
):
    data = {
        "applications": await application_service.get_stats(current_user),
        "documents": await document_service.counts_by_status(),
    }
    if policy.has_permission(current_user.role, "payments:read"):
        data["bookings"] = await booking_service.get_stats()
    if policy.is_super_admin(current_user.role):
        data["admins"] = await user_service.dashboard_metrics()
    return success_response(data)


@router.get("/admin-users")
async def list_admin_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[str] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    current_user: StaffUser = Depends(require_role(StaffRole.SUPER_ADMIN)),
):
    return success_response(await user_service.list_users(page, limit, role, is_active))


@router.post("/admin-users", status_code=status.HTTP_201_CREATED, dependencies=[Depends(admin_limiter)])
async def create_admin_user(
    body: StaffUserCreate,
    current_user: StaffUser = Depends(require_role(StaffRole.SUPER_ADMIN)),
    context: RequestContext = Depends(get_request_context),
):
    user = await user_service.create_user(body, current_user, context)
    return success_response(serialize_user(user), "Admin user created")


@router.patch("/admin-users/{user_id}", dependencies=[Depends(admin_limiter)])
async def update_admin_user(
    user_id: str,
    body: StaffUserUpdate,
    current_user: StaffUser = Depends(require_role(StaffRole.SUPER_ADMIN)),
    context: RequestContext = Depends(get_request_context),
):
    target = await user_service.get_user(user_id)
    user = await user_service.update_user(target, body, current_user, context)
    return success_response(serialize_user(user), "Admin user updated")


@router.delete("/admin-users/{user_id}", dependencies=[Depends(admin_limiter)])
async def delete_admin_user(
    user_id: str,
    current_user: StaffUser = Depends(require_role(StaffRole.SUPER_ADMIN)),
    context: RequestContext = Depends(get_request_context),
):
    target = await user_service.get_user(user_id)
    await user_service.delete_user(target, current_user, context)
    return success_response(message="Admin user deleted")
