from datetime import datetime
from typing import Any, Dict, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import Field

from agency_backend.schemas.enums import TimelineAction
from agency_backend.utils.time_utils import utcnow


class ApplicationTimeline(Document):
    application_id: Indexed(PydanticObjectId) = Field(..., description="Application this event belongs to")
    action: TimelineAction = Field(..., description="What happened")
    performed_by: Optional[PydanticObjectId] = Field(None, description="Staff account, null for public submissions")
    performed_by_label: Optional[str] = Field(None, description="Display name of whoever acted")
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    comment: Optional[str] = Field(None, max_length=1000)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "application_timelines"
