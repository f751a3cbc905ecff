import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from agency_backend.core.config import settings
from agency_backend.core.exceptions import (
    AccountDisabled,
    AuthenticationFailed,
    InvalidToken,
    ValidationFailed,
)
from agency_backend.core.security import (
    create_reset_token,
    decode_refresh_token,
    decode_reset_token,
    hash_password,
    is_valid_password,
    issue_token_pair,
    verify_password,
)
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_user
from agency_backend.schemas.enums import AuditAction
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.notification_service import notification_service
from agency_backend.services.user_service import user_service
from agency_backend.services.workflow_service import to_object_id
from agency_backend.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

RESET_REQUEST_MESSAGE = "If an account exists for this email, a password reset link has been sent."


class AuthService:
    # Issues a token pair and stores the refresh token on the account
    @staticmethod
    async def _start_session(user: StaffUser) -> Dict[str, Any]:
        tokens = issue_token_pair(str(user.id), user.role.value)
        expires_at = utcnow() + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
        user.add_refresh_token(tokens["refresh_token"], expires_at, settings.MAX_REFRESH_TOKENS)
        return tokens

    # Authenticates credentials; every attempt writes exactly one audit record
    @staticmethod
    async def login(email: Optional[str], password: Optional[str],
                    context: Optional[RequestContext] = None) -> Dict[str, Any]:
        if not email or not password:
            await audit_service.log_failed_login(email, context, reason="Missing credentials", status_code=400)
            raise ValidationFailed("Email and password are required")

        user = await user_service.find_by_email(email)
        if user is None:
            await audit_service.log_failed_login(email, context, reason="User not found")
            raise AuthenticationFailed("Invalid credentials")
        if not user.is_active:
            await audit_service.log_failed_login(email, context, reason="Account deactivated", status_code=403)
            raise AccountDisabled("Account is deactivated. Contact an administrator.")
        if not verify_password(password, user.password_hash):
            await audit_service.log_failed_login(email, context, reason="Invalid password")
            raise AuthenticationFailed("Invalid credentials")

        tokens = await AuthService._start_session(user)
        user.last_login = utcnow()
        await user.save()
        await audit_service.log_login(user, context)
        logger.info("Staff user %s logged in", user.email)
        return {**tokens, "user": serialize_user(user)}

    # Removes the given refresh token; without one, all sessions end
    @staticmethod
    async def logout(user: StaffUser, refresh_token: Optional[str] = None,
                     context: Optional[RequestContext] = None) -> None:
        if refresh_token:
            user.remove_refresh_token(refresh_token)
        else:
            user.refresh_tokens = []
        await user.save()
        await audit_service.log_logout(user, context)

    # Rotates a stored refresh token into a new token pair
    @staticmethod
    async def refresh(refresh_token: Optional[str], context: Optional[RequestContext] = None) -> Dict[str, Any]:
        if not refresh_token:
            raise ValidationFailed("Refresh token is required")
        payload = decode_refresh_token(refresh_token)
        user = await StaffUser.get(to_object_id(payload["sub"], "token subject"))
        if user is None:
            raise InvalidToken("Invalid refresh token")
        if not user.is_active:
            raise AccountDisabled()
        if not user.has_refresh_token(refresh_token):
            raise InvalidToken("Refresh token has been revoked or expired")

        user.remove_refresh_token(refresh_token)
        tokens = await AuthService._start_session(user)
        await user.save()
        await audit_service.log_token_refresh(user, context)
        return tokens

    # Changes the password after verifying the current one and ends all other sessions
    @staticmethod
    async def change_password(user: StaffUser, current_password: str, new_password: str,
                              context: Optional[RequestContext] = None) -> Dict[str, Any]:
        if not verify_password(current_password, user.password_hash):
            await audit_service.log_event(AuditAction.PASSWORD_CHANGE_FAILED, user=user, context=context,
                                          success=False, error_message="Current password is incorrect",
                                          status_code=401)
            raise AuthenticationFailed("Current password is incorrect")
        if not is_valid_password(new_password):
            raise ValidationFailed("Password must be at least 8 characters long")

        user.password_hash = hash_password(new_password)
        user.refresh_tokens = []
        tokens = await AuthService._start_session(user)
        await user.save()
        await audit_service.log_event(AuditAction.PASSWORD_CHANGED, user=user, context=context,
                                      entity_type="StaffUser", entity_id=user.id)
        return tokens

    # Sends a reset link when the account exists; the response never reveals whether it does
    @staticmethod
    async def forgot_password(email: str, context: Optional[RequestContext] = None) -> str:
        user = await user_service.find_by_email(email)
        await audit_service.log_event(AuditAction.PASSWORD_RESET_REQUEST, user_email=email, context=context,
                                      user_id=user.id if user else None,
                                      metadata={"accountFound": user is not None})
        if user is None or not user.is_active:
            return RESET_REQUEST_MESSAGE

        token = create_reset_token(str(user.id), user.password_hash)
        link = f"{settings.CLIENT_URL.split(',')[0].strip()}/admin/reset-password?token={token}"
        try:
            await notification_service.send_password_reset(user.email, user.name, link)
        except Exception:
            logger.exception("Password reset e-mail failed for %s", user.email)
        return RESET_REQUEST_MESSAGE

    # Sets a new password from a reset token; the token dies once the password changes
    @staticmethod
    async def reset_password(token: str, new_password: str, context: Optional[RequestContext] = None) -> None:
        payload = decode_reset_token(token)
        user = await StaffUser.get(to_object_id(payload["sub"], "token subject"))
        if user is None or not user.is_active or payload.get("fp") != user.password_hash[-12:]:
            raise InvalidToken("Invalid or expired reset token")
        if not is_valid_password(new_password):
            raise ValidationFailed("Password must be at least 8 characters long")

        user.password_hash = hash_password(new_password)
        user.refresh_tokens = []
        await user.save()
        await audit_service.log_event(AuditAction.PASSWORD_RESET_COMPLETE, user=user, context=context,
                                      entity_type="StaffUser", entity_id=user.id)


auth_service = AuthService()
