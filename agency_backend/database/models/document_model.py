from datetime import datetime
from typing import Any, Dict, Optional

from beanie import Document, Indexed, PydanticObjectId, before_event, Replace, Save, SaveChanges
from pydantic import Field, model_validator

from agency_backend.schemas.enums import DocumentSource, DocumentStatus, DocumentType
from agency_backend.utils.time_utils import utcnow


class ApplicationDocument(Document):
    application_id: Indexed(PydanticObjectId) = Field(..., description="Owning application")
    document_type: DocumentType = Field(..., description="Kind of supporting document")

    # exactly one storage locator is set
    file_path: Optional[str] = Field(None, description="Path of the stored file relative to UPLOAD_DIR")
    remote_url: Optional[str] = Field(None, description="URL of a remotely hosted file")
    remote_public_id: Optional[str] = None
    file_name: Optional[str] = None
    original_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    source: DocumentSource = Field(default=DocumentSource.UPLOAD)

    status: DocumentStatus = Field(default=DocumentStatus.UPLOADED)
    uploaded_by: Optional[PydanticObjectId] = Field(None, description="Staff uploader, null for applicant uploads")
    uploaded_by_label: Optional[str] = None
    verified_by: Optional[PydanticObjectId] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)
    expiry_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_locator(self):
        if bool(self.file_path) == bool(self.remote_url):
            raise ValueError("A document needs exactly one of file_path or remote_url")
        return self

    @before_event(Replace, Save, SaveChanges)
    def _touch(self):
        self.updated_at = utcnow()

    @property
    def is_remote(self) -> bool:
        return bool(self.remote_url)

    class Settings:
        name = "application_documents"
