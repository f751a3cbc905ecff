import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from agency_backend.core.auth_dependencies import require_role
from agency_backend.core.exceptions import ValidationFailed
from agency_backend.core.rate_limit import api_limiter
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_document, success_response
from agency_backend.schemas.enums import AuditAction, StaffRole
from agency_backend.services.audit_service import audit_service
from agency_backend.services.workflow_service import to_object_id
from agency_backend.utils.time_utils import parse_date

router = APIRouter(prefix="/admin/api/audit-logs", tags=["Audit Logs"], dependencies=[Depends(api_limiter)])

logger = logging.getLogger(__name__)


@router.get("")
async def list_audit_logs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: Optional[str] = Query(default=None, alias="userId"),
    user_email: Optional[str] = Query(default=None, alias="userEmail"),
    action: Optional[str] = Query(default=None),
    success: Optional[bool] = Query(default=None),
    entity_id: Optional[str] = Query(default=None, alias="entityId"),
    start_date: Optional[str] = Query(default=None, alias="startDate", description="YYYY-MM-DD or ISO-8601"),
    end_date: Optional[str] = Query(default=None, alias="endDate", description="YYYY-MM-DD or ISO-8601"),
    current_user: StaffUser = Depends(require_role(StaffRole.SUPER_ADMIN)),
):
    """Newest-first audit trail with optional filters."""
    filters: Dict[str, Any] = {
        "user_email": user_email,
        "success": success,
        "entity_id": entity_id,
    }
    if user_id:
        filters["user_id"] = to_object_id(user_id, "userId")
    if action:
        try:
            filters["action"] = AuditAction(action)
        except ValueError:
            raise ValidationFailed(f"Invalid action '{action}'",
                                   details={"validActions": [a.value for a in AuditAction]})
    try:
        filters["start_date"] = parse_date(start_date)
        filters["end_date"] = parse_date(end_date, end_of_day=True)
    except ValueError:
        raise ValidationFailed("Invalid date format, expected YYYY-MM-DD or ISO-8601")

    result = await audit_service.get_logs(page=page, limit=limit, filters=filters)
    return success_response({
        "logs": [serialize_document(log) for log in result["logs"]],
        "pagination": result["pagination"],
    })
