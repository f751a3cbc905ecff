import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status

from agency_backend.core.auth_dependencies import get_current_user, get_request_context
from agency_backend.core.exceptions import AgencyError
from agency_backend.core.rate_limit import api_limiter, login_limiter, password_reset_limiter
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import success_response
from agency_backend.schemas.user_schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    ResetPasswordRequest,
)
from agency_backend.services.audit_service import RequestContext
from agency_backend.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin/api/auth",
    tags=["Admin Authentication"],
)


# Authenticates a staff member; only failed attempts count against the login limiter
@router.post("/login", status_code=status.HTTP_200_OK, dependencies=[Depends(login_limiter)])
async def login(body: LoginRequest, request: Request, context: RequestContext = Depends(get_request_context)):
    try:
        result = await auth_service.login(body.email, body.password, context)
    except AgencyError:
        await login_limiter.record_failure(request)
        raise
    return success_response(result, "Login successful")


# Ends the session bound to the given refresh token, or every session when none is sent
@router.post("/logout", status_code=status.HTTP_200_OK)
async def logout(
    body: Optional[LogoutRequest] = None,
    current_user: StaffUser = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    await auth_service.logout(current_user, body.refresh_token if body else None, context)
    return success_response(message="Logged out successfully")


# Exchanges a refresh token for a new token pair
@router.post("/refresh", status_code=status.HTTP_200_OK, dependencies=[Depends(api_limiter)])
async def refresh(body: RefreshRequest, context: RequestContext = Depends(get_request_context)):
    tokens = await auth_service.refresh(body.refresh_token, context)
    return success_response(tokens, "Token refreshed")


@router.post("/forgot-password", status_code=status.HTTP_200_OK, dependencies=[Depends(password_reset_limiter)])
async def forgot_password(body: ForgotPasswordRequest, context: RequestContext = Depends(get_request_context)):
    message = await auth_service.forgot_password(str(body.email), context)
    return success_response(message=message)


@router.post("/reset-password", status_code=status.HTTP_200_OK, dependencies=[Depends(password_reset_limiter)])
async def reset_password(body: ResetPasswordRequest, context: RequestContext = Depends(get_request_context)):
    await auth_service.reset_password(body.token, body.new_password, context)
    return success_response(message="Password has been reset. Please log in with your new password.")


# Changes the caller's password; all other sessions are signed out
@router.post("/change-password", status_code=status.HTTP_200_OK)
async def change_password(
    body: ChangePasswordRequest,
    current_user: StaffUser = Depends(get_current_user),
    context: RequestContext = Depends(get_request_context),
):
    tokens = await auth_service.change_password(current_user, body.current_password, body.new_password, context)
    return success_response(tokens, "Password changed successfully")
