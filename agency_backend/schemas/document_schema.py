from datetime import datetime
from typing import List, Optional

from fastapi import File, Form, UploadFile
from pydantic import Field

from agency_backend.schemas.base_schema import CamelModel


class DocumentUploadRequest:
    """Multipart form for staff uploads: one document type, up to MAX_FILES_PER_UPLOAD files."""

    def __init__(
        self,
        documentType: str = Form(...),
        documents: List[UploadFile] = File(...),
        expiryDate: Optional[datetime] = Form(None),
        notes: Optional[str] = Form(None),
    ):
        self.document_type = documentType
        self.files = documents
        self.expiry_date = expiryDate
        self.notes = notes


class PublicDocumentUploadRequest:
    """Multipart form an applicant posts with their reference number and e-mail."""

    def __init__(
        self,
        document: Optional[UploadFile] = File(None),
        referenceNumber: Optional[str] = Form(None),
        email: Optional[str] = Form(None),
        documentType: Optional[str] = Form(None),
    ):
        self.file = document
        self.reference_number = referenceNumber
        self.email = email
        self.document_type = documentType

    def missing_fields(self) -> List[str]:
        fields = {
            "document": self.file,
            "referenceNumber": self.reference_number,
            "email": self.email,
            "documentType": self.document_type,
        }
        return [name for name, value in fields.items() if not value]


class DocumentStatusUpdate(CamelModel):
    status: str
    rejection_reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class DocumentUrlSubmission(CamelModel):
    reference_number: Optional[str] = None
    email: Optional[str] = None
    document_type: Optional[str] = None
    cloudinary_url: Optional[str] = None
    cloudinary_public_id: Optional[str] = None
    original_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
