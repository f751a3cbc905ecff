from datetime import datetime
from typing import Any, Dict, Optional

from beanie import Document, PydanticObjectId, before_event, Delete, Replace, Save, SaveChanges, Update
from pydantic import Field

from agency_backend.core.exceptions import ImmutableRecord
from agency_backend.schemas.enums import AuditAction
from agency_backend.utils.time_utils import utcnow


class AuditLog(Document):
    user_id: Optional[PydanticObjectId] = Field(None, description="Staff account that acted, null for anonymous attempts")
    user_email: Optional[str] = Field(None, description="E-mail captured for the actor or the attempted login")
    actor_label: Optional[str] = Field(None, description="Free-text actor such as 'Public Website'")
    action: AuditAction = Field(..., description="Action tag from the closed audit vocabulary")
    entity_type: Optional[str] = Field(None, description="Kind of record acted upon")
    entity_id: Optional[str] = Field(None, description="Identifier of the record acted upon")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_path: Optional[str] = None
    request_method: Optional[str] = None
    status_code: Optional[int] = None
    # schema-less; common keys: reason, previousStatus, newStatus, referenceNumber, fileCount
    metadata: Dict[str, Any] = Field(default_factory=dict)
    success: bool = Field(default=True)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, description="When the action occurred")

    @before_event(Replace, Save, SaveChanges, Update, Delete)
    def _reject_mutation(self):
        if self.id is not None:
            raise ImmutableRecord("Audit log entries cannot be modified")

    class Settings:
        name = "audit_logs"
