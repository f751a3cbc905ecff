import logging
from typing import Optional

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from agency_backend.core.exceptions import AccountDisabled, AuthenticationFailed, InsufficientRole, InvalidToken
from agency_backend.core.rbac import RbacPolicy, load_rbac_policy
from agency_backend.core.security import decode_access_token
from agency_backend.database.models import StaffUser
from agency_backend.schemas.enums import StaffRole
from agency_backend.services.audit_service import RequestContext, audit_service

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/admin/api/auth/login", auto_error=False)


# Returns the policy loaded at startup
def get_rbac_policy(request: Request) -> RbacPolicy:
    policy = getattr(request.app.state, "rbac_policy", None)
    if policy is None:
        policy = load_rbac_policy()
        request.app.state.rbac_policy = policy
    return policy


# Extracts and validates the bearer token and loads the active staff account
async def get_current_user(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> StaffUser:
    context = RequestContext.from_request(request)
    if not token:
        await audit_service.log_unauthorized_access(context, "No token provided")
        raise AuthenticationFailed("Access denied. No token provided.")

    try:
        payload = decode_access_token(token)
    except InvalidToken:
        logger.warning("Token validation failed for %s", context.path)
        await audit_service.log_unauthorized_access(context, "Invalid token")
        raise

    try:
        user = await StaffUser.get(PydanticObjectId(payload["sub"]))
    except (InvalidId, TypeError):
        user = None
    if user is None:
        await audit_service.log_unauthorized_access(context, "User not found")
        raise InvalidToken("Invalid token. User not found.")
    if not user.is_active:
        raise AccountDisabled("Account is deactivated. Contact an administrator.")

    request.state.user = user
    return user


def require_role(*roles: StaffRole):
    """Allow the listed roles. Super Admin always passes."""
    allowed = tuple(StaffRole(r) for r in roles)
    names = [r.value for r in allowed]

    async def role_guard(
        request: Request,
        current_user: StaffUser = Depends(get_current_user),
        policy: RbacPolicy = Depends(get_rbac_policy),
    ) -> StaffUser:
        if policy.is_role_allowed(current_user.role, allowed):
            return current_user
        logger.warning("Role %s denied on %s %s", current_user.role.value, request.method, request.url.path)
        await audit_service.log_forbidden_access(
            current_user,
            RequestContext.from_request(request),
            reason=f"Role '{current_user.role.value}' is not one of: {', '.join(names)}",
            metadata={"requiredRoles": names, "userRole": current_user.role.value},
        )
        raise InsufficientRole(required_roles=names, user_role=current_user.role.value)

    return role_guard


def require_permission(permission: str):
    """Allow roles whose permission set contains ``permission`` (or the wildcard)."""

    async def permission_guard(
        request: Request,
        current_user: StaffUser = Depends(get_current_user),
        policy: RbacPolicy = Depends(get_rbac_policy),
    ) -> StaffUser:
        if policy.has_permission(current_user.role, permission):
            return current_user
        logger.warning("Permission %s denied for role %s", permission, current_user.role.value)
        await audit_service.log_forbidden_access(
            current_user,
            RequestContext.from_request(request),
            reason=f"Missing permission '{permission}'",
            metadata={"requiredPermission": permission, "userRole": current_user.role.value},
        )
        raise InsufficientRole(required_permission=permission, user_role=current_user.role.value)

    return permission_guard


def get_request_context(request: Request) -> RequestContext:
    return RequestContext.from_request(request)
