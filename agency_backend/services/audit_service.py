import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from beanie import PydanticObjectId
from fastapi import Request

from agency_backend.database.models.audit_log_model import AuditLog
from agency_backend.schemas.enums import AuditAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    path: Optional[str] = None
    method: Optional[str] = None

    @classmethod
    def from_request(cls, request: Optional[Request]) -> "RequestContext":
        if request is None:
            return cls()
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else None
        return cls(
            ip_address=ip,
            user_agent=request.headers.get("user-agent"),
            path=request.url.path,
            method=request.method,
        )


@dataclass(frozen=True)
class AuditResult:
    """Outcome of an audit write. ``recorded`` is False when the write failed."""

    recorded: bool
    error: Optional[str] = None
    log_id: Optional[str] = None


class AuditService:
    """Append-only recorder for security and workflow events.

    ``log_event`` never raises: a failed write is reported on the module logger
    and returned as ``AuditResult(recorded=False)`` so the caller carries on.
    """

    async def log_event(
        self,
        action: AuditAction,
        *,
        user=None,
        user_id: Optional[PydanticObjectId] = None,
        user_email: Optional[str] = None,
        actor_label: Optional[str] = None,
        context: Optional[RequestContext] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> AuditResult:
        try:
            context = context or RequestContext()
            if user is not None:
                user_id = user_id or user.id
                user_email = user_email or user.email
                actor_label = actor_label or user.name
            if isinstance(user_email, str):
                user_email = user_email.strip().lower()
            audit = AuditLog(
                action=action,
                user_id=user_id,
                user_email=user_email,
                actor_label=actor_label,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                request_path=context.path,
                request_method=context.method,
                status_code=status_code,
                metadata=metadata or {},
                success=success,
                error_message=error_message,
            )
            await audit.insert()
            return AuditResult(recorded=True, log_id=str(audit.id))
        except Exception as e:
            logger.error("Failed to write audit log (action=%s): %s", getattr(action, "value", action), e)
            return AuditResult(recorded=False, error=str(e))

    async def log_login(self, user, context: Optional[RequestContext] = None) -> AuditResult:
        return await self.log_event(AuditAction.LOGIN_SUCCESS, user=user, context=context,
                                    entity_type="StaffUser", entity_id=user.id, status_code=200)

    async def log_failed_login(self, email: Optional[str], context: Optional[RequestContext] = None,
                               reason: str = "Invalid credentials", status_code: int = 401) -> AuditResult:
        return await self.log_event(
            AuditAction.LOGIN_FAILED,
            user_email=email,
            context=context,
            metadata={"reason": reason},
            success=False,
            error_message=reason,
            status_code=status_code,
        )

    async def log_logout(self, user, context: Optional[RequestContext] = None) -> AuditResult:
        return await self.log_event(AuditAction.LOGOUT, user=user, context=context,
                                    entity_type="StaffUser", entity_id=user.id, status_code=200)

    async def log_token_refresh(self, user, context: Optional[RequestContext] = None) -> AuditResult:
        return await self.log_event(AuditAction.REFRESH_TOKEN, user=user, context=context,
                                    entity_type="StaffUser", entity_id=user.id, status_code=200)

    async def log_unauthorized_access(self, context: Optional[RequestContext], reason: str,
                                      user_email: Optional[str] = None) -> AuditResult:
        return await self.log_event(
            AuditAction.UNAUTHORIZED_ACCESS_ATTEMPT,
            user_email=user_email,
            context=context,
            metadata={"reason": reason},
            success=False,
            error_message=reason,
            status_code=401,
        )

    async def log_forbidden_access(self, user, context: Optional[RequestContext], reason: str,
                                   metadata: Optional[Dict[str, Any]] = None) -> AuditResult:
        details = {"reason": reason}
        details.update(metadata or {})
        return await self.log_event(
            AuditAction.FORBIDDEN_ACCESS_ATTEMPT,
            user=user,
            context=context,
            metadata=details,
            success=False,
            error_message=reason,
            status_code=403,
        )

    async def get_logs(self, page: int = 1, limit: int = 50, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        filters = filters or {}
        if filters.get("user_id"):
            query["user_id"] = PydanticObjectId(filters["user_id"])
        if filters.get("user_email"):
            query["user_email"] = filters["user_email"].lower()
        if filters.get("action"):
            query["action"] = AuditAction(filters["action"]).value
        if filters.get("success") is not None:
            query["success"] = filters["success"]
        if filters.get("entity_id"):
            query["entity_id"] = str(filters["entity_id"])
        date_range: Dict[str, datetime] = {}
        if filters.get("start_date"):
            date_range["$gte"] = filters["start_date"]
        if filters.get("end_date"):
            date_range["$lte"] = filters["end_date"]
        if date_range:
            query["created_at"] = date_range

        skip = (page - 1) * limit
        total = await AuditLog.find(query).count()
        docs: List[AuditLog] = await AuditLog.find(query).sort("-created_at").skip(skip).limit(limit).to_list()
        return {
            "logs": docs,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit if limit else 0,
            },
        }


audit_service = AuditService()
