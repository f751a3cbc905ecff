from fastapi import APIRouter, Depends, Request, status

from agency_backend.core.auth_dependencies import get_current_user, get_request_context, require_role
from agency_backend.core.exceptions import AgencyError
from agency_backend.core.rate_limit import login_limiter
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_user, success_response
from agency_backend.schemas.enums import StaffRole
from agency_backend.schemas.user_schemas import LoginRequest, StaffUserCreate
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.auth_service import auth_service
from agency_backend.services.user_service import user_service

router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"]
)


# Authenticates user credentials and returns a token pair
@router.post("/login", status_code=status.HTTP_200_OK, dependencies=[Depends(login_limiter)])
async def login_user(body: LoginRequest, request: Request, context: RequestContext = Depends(get_request_context)):
    try:
        result = await auth_service.login(body.email, body.password, context)
    except AgencyError:
        await login_limiter.record_failure(request)
        raise
    return success_response(result, "Login successful")


# Creates a staff account; only a Super Admin may register users
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    body: StaffUserCreate,
    current_user: StaffUser = Depends(require_role(StaffRole.SUPER_ADMIN)),
    context: RequestContext = Depends(get_request_context),
):
    user = await user_service.create_user(body, current_user, context)
    return success_response(serialize_user(user), "User registered")


# Retrieves the authenticated user's profile information
@router.get("/me", status_code=status.HTTP_200_OK)
async def get_current_user_info(current_user: StaffUser = Depends(get_current_user)):
    return success_response(serialize_user(current_user))
