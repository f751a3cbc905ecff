import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import UploadFile

from agency_backend.core.config import settings
from agency_backend.core.exceptions import LockedApplication, ResourceNotFound, ValidationFailed
from agency_backend.database.models import Application, ApplicationDocument, StaffUser
from agency_backend.schemas.enums import (
    AuditAction,
    DocumentSource,
    DocumentStatus,
    DocumentType,
    TimelineAction,
)
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.workflow_service import to_object_id, workflow_service
from agency_backend.utils import file_storage
from agency_backend.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def parse_document_type(value: Any) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        raise ValidationFailed(
            f"Invalid document type '{value}'",
            details={"validTypes": [t.value for t in DocumentType]},
        )


@dataclass(frozen=True)
class DownloadTarget:
    path: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    redirect_url: Optional[str] = None


class DocumentService:
    """Stores supporting documents and keeps the owning application in sync."""

    async def get_document(self, document_id: Any) -> ApplicationDocument:
        document = await ApplicationDocument.get(to_object_id(document_id, "document id"))
        if document is None:
            raise ResourceNotFound("Document")
        return document

    async def list_for_application(self, application: Application) -> List[ApplicationDocument]:
        return await ApplicationDocument.find(
            ApplicationDocument.application_id == application.id
        ).sort("-created_at").to_list()

    async def _derive(self, application: Application):
        try:
            await workflow_service.derive_status_from_documents(application.id)
        except Exception:
            logger.exception("Status derivation failed for application %s", application.reference_number)

    async def upload_documents(
        self,
        application: Application,
        document_type: Any,
        files: List[UploadFile],
        actor: StaffUser,
        context: Optional[RequestContext] = None,
        expiry_date: Optional[datetime] = None,
        notes: Optional[str] = None,
        enforce_lock: bool = False,
        derive_status: bool = False,
    ) -> List[ApplicationDocument]:
        """Store up to MAX_FILES_PER_UPLOAD files of one type against an application."""
        files = [f for f in (files or []) if f is not None and f.filename]
        if not files:
            raise ValidationFailed("No files uploaded")
        if len(files) > settings.MAX_FILES_PER_UPLOAD:
            raise ValidationFailed(f"Too many files. Maximum is {settings.MAX_FILES_PER_UPLOAD} per upload")
        doc_type = parse_document_type(document_type)
        if enforce_lock and application.locked:
            raise LockedApplication("Cannot upload documents to a locked application")

        # validate everything before writing anything
        contents = [(upload, await file_storage.read_validated(upload)) for upload in files]

        created: List[ApplicationDocument] = []
        for upload, content in contents:
            stored = await file_storage.save_bytes(str(application.id), upload.filename, upload.content_type,
                                                   content)
            document = ApplicationDocument(
                application_id=application.id,
                document_type=doc_type,
                file_path=stored.relative_path,
                file_name=stored.file_name,
                original_name=stored.original_name,
                mime_type=stored.mime_type,
                file_size=stored.size,
                source=DocumentSource.UPLOAD,
                uploaded_by=actor.id,
                uploaded_by_label=actor.name,
                expiry_date=expiry_date,
                notes=notes,
            )
            await document.insert()
            created.append(document)

        application.documents.extend(d.id for d in created)
        await application.save()

        await workflow_service.record_timeline(
            application.id,
            TimelineAction.DOCUMENT_UPLOADED,
            actor=actor,
            comment=f"{len(created)} {doc_type.value} document(s) uploaded",
            metadata={"documentIds": [str(d.id) for d in created]},
        )
        await audit_service.log_event(
            AuditAction.DOCUMENTS_UPLOADED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"fileCount": len(created), "documentType": doc_type.value,
                      "referenceNumber": application.reference_number},
        )
        logger.info("%d document(s) uploaded to %s by %s", len(created), application.reference_number, actor.email)

        if derive_status:
            await self._derive(application)
        return created

    async def store_applicant_upload(self, application: Application, document_type: Any, upload: UploadFile,
                                     context: Optional[RequestContext] = None) -> ApplicationDocument:
        doc_type = parse_document_type(document_type)
        content = await file_storage.read_validated(upload)
        stored = await file_storage.save_bytes(str(application.id), upload.filename, upload.content_type, content)
        label = f"Applicant: {application.applicant_name}"
        document = ApplicationDocument(
            application_id=application.id,
            document_type=doc_type,
            file_path=stored.relative_path,
            file_name=stored.file_name,
            original_name=stored.original_name,
            mime_type=stored.mime_type,
            file_size=stored.size,
            source=DocumentSource.UPLOAD,
            uploaded_by_label=label,
        )
        await document.insert()
        await self._attach_public(application, document, label, context)
        return document

    async def register_remote_document(
        self,
        application: Application,
        document_type: Any,
        url: str,
        public_id: Optional[str],
        context: Optional[RequestContext] = None,
        original_name: Optional[str] = None,
        file_size: Optional[int] = None,
        mime_type: Optional[str] = None,
    ) -> ApplicationDocument:
        doc_type = parse_document_type(document_type)
        if not url.lower().startswith(("https://", "http://")):
            raise ValidationFailed("Document URL must be an http(s) URL")
        label = f"External System: {application.applicant_name}"
        document = ApplicationDocument(
            application_id=application.id,
            document_type=doc_type,
            remote_url=url,
            remote_public_id=public_id,
            original_name=original_name,
            file_name=original_name,
            file_size=file_size,
            mime_type=mime_type,
            source=DocumentSource.CLOUDINARY if public_id else DocumentSource.EXTERNAL,
            uploaded_by_label=label,
            metadata={"publicId": public_id} if public_id else {},
        )
        await document.insert()
        await self._attach_public(application, document, label, context)
        return document

    async def _attach_public(self, application: Application, document: ApplicationDocument, label: str,
                             context: Optional[RequestContext]):
        application.documents.append(document.id)
        await application.save()
        await workflow_service.record_timeline(
            application.id,
            TimelineAction.DOCUMENT_UPLOADED,
            actor_label=label,
            comment=f"{document.document_type.value} uploaded by applicant",
            metadata={"documentId": str(document.id)},
        )
        await audit_service.log_event(
            AuditAction.DOCUMENT_UPLOADED,
            actor_label=label,
            user_email=application.applicant_email,
            context=context,
            entity_type="Document",
            entity_id=document.id,
            metadata={"referenceNumber": application.reference_number, "documentType": document.document_type.value,
                      "source": document.source.value},
        )

    async def prepare_download(self, document: ApplicationDocument, actor: StaffUser,
                               context: Optional[RequestContext] = None) -> DownloadTarget:
        if document.is_remote:
            target = DownloadTarget(redirect_url=document.remote_url)
        else:
            path = file_storage.resolve_path(document.file_path)
            if not path.exists():
                raise ResourceNotFound("File")
            target = DownloadTarget(path=str(path), file_name=document.original_name or document.file_name,
                                    mime_type=document.mime_type)
        await audit_service.log_event(
            AuditAction.DOCUMENT_DOWNLOADED,
            user=actor,
            context=context,
            entity_type="Document",
            entity_id=document.id,
            metadata={"applicationId": str(document.application_id), "documentType": document.document_type.value},
        )
        return target

    async def delete_document(self, document: ApplicationDocument, actor: StaffUser,
                              context: Optional[RequestContext] = None) -> None:
        if document.file_path:
            file_storage.remove_file(document.file_path)
        await document.delete()

        application = await Application.get(document.application_id)
        if application is not None:
            application.documents = [d for d in application.documents if d != document.id]
            await application.save()
            await workflow_service.record_timeline(
                application.id,
                TimelineAction.DOCUMENT_DELETED,
                actor=actor,
                comment=f"{document.document_type.value} document deleted",
                metadata={"documentId": str(document.id)},
            )
        await audit_service.log_event(
            AuditAction.DOCUMENT_DELETED,
            user=actor,
            context=context,
            entity_type="Document",
            entity_id=document.id,
            metadata={"applicationId": str(document.application_id), "documentType": document.document_type.value},
        )

    async def expiring_documents(self, days: int = 30) -> List[ApplicationDocument]:
        now = utcnow()
        return await ApplicationDocument.find(
            {
                "status": DocumentStatus.VERIFIED.value,
                "expiry_date": {"$gte": now, "$lte": now + timedelta(days=days)},
            }
        ).sort("expiry_date").to_list()

    async def counts_by_status(self) -> Dict[str, int]:
        rows = await ApplicationDocument.aggregate([
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]).to_list()
        counts = {s.value: 0 for s in DocumentStatus}
        for row in rows:
            counts[row["_id"]] = row["count"]
        return counts


document_service = DocumentService()
