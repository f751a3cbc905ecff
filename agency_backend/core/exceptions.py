"""Typed errors raised by services and rendered by the handlers in ``agency_backend.main``.

Every error carries a stable ``code`` and the HTTP status it maps to, so the
global handler can build the ``{"success": false, ...}`` envelope without
knowing which service raised it.
"""

from typing import Any, Dict, Iterable, Optional


class AgencyError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        body.update(self.details)
        return body


class ValidationFailed(AgencyError):
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidStatus(AgencyError):
    status_code = 400
    code = "INVALID_STATUS"

    def __init__(self, value: Any, allowed: Iterable[str]):
        allowed = list(allowed)
        super().__init__(
            f"Invalid status '{value}'. Must be one of: {', '.join(allowed)}",
            details={"validStatuses": allowed},
        )


class LockedApplication(AgencyError):
    status_code = 400
    code = "APPLICATION_LOCKED"

    def __init__(self, message: str = "Application is locked. Only withdrawal is allowed."):
        super().__init__(message)


class MissingReason(AgencyError):
    status_code = 400
    code = "REJECTION_REASON_REQUIRED"

    def __init__(self, message: str = "Rejection reason is required when rejecting a document"):
        super().__init__(message)


class MalformedPayload(AgencyError):
    status_code = 400
    code = "MALFORMED_JSON"

    def __init__(self, example: Dict[str, Any], received: str):
        super().__init__(
            "Invalid JSON format",
            details={
                "details": "Please ensure the request body is valid JSON with double-quoted keys and values",
                "example": example,
                "received": received[:100],
            },
        )


class AuthenticationFailed(AgencyError):
    status_code = 401
    code = "AUTHENTICATION_FAILED"


class InvalidToken(AgencyError):
    status_code = 401
    code = "INVALID_TOKEN"

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class TokenExpired(AgencyError):
    status_code = 401
    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token expired"):
        super().__init__(message)


class InsufficientRole(AgencyError):
    status_code = 403
    code = "INSUFFICIENT_ROLE"

    def __init__(self, message: str = "Access denied. Insufficient permissions.", *,
                 required_roles: Optional[Iterable[str]] = None, required_permission: Optional[str] = None,
                 user_role: Optional[str] = None):
        details: Dict[str, Any] = {}
        if required_roles is not None:
            details["requiredRoles"] = list(required_roles)
        if required_permission is not None:
            details["requiredPermission"] = required_permission
        if user_role is not None:
            details["userRole"] = user_role
        super().__init__(message, details=details)


class AccountDisabled(AgencyError):
    status_code = 403
    code = "ACCOUNT_DEACTIVATED"

    def __init__(self, message: str = "Account is deactivated"):
        super().__init__(message)


class LastSuperAdmin(AgencyError):
    status_code = 403
    code = "LAST_SUPER_ADMIN"

    def __init__(self, message: str = "Cannot remove the last active Super Admin"):
        super().__init__(message)


class ResourceNotFound(AgencyError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")


class DuplicateResource(AgencyError):
    status_code = 409
    code = "DUPLICATE"


class RateLimitExceeded(AgencyError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: int):
        super().__init__(message, details={"retryAfter": retry_after})
        self.retry_after = retry_after


class ImmutableRecord(AgencyError):
    status_code = 500
    code = "IMMUTABLE_RECORD"
