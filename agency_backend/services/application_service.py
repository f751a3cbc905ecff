import logging
import re
from typing import Any, Dict, List, Optional

from agency_backend.core.exceptions import InsufficientRole, LockedApplication, ResourceNotFound
from agency_backend.database.models import (
    Application,
    ApplicationDocument,
    ApplicationTimeline,
    Comment,
    InternalNote,
    StaffUser,
    TravelDates,
)
from agency_backend.helpers.response_builder import serialize_document
from agency_backend.schemas.application_schema import ApplicationCreate, ApplicationUpdate
from agency_backend.schemas.enums import (
    ApplicationSource,
    ApplicationStatus,
    AuditAction,
    StaffRole,
    TimelineAction,
)
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.workflow_service import parse_status, to_object_id, workflow_service
from agency_backend.utils import file_storage
from agency_backend.utils.reference_numbers import application_reference, insert_with_reference

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SORTABLE_FIELDS = {"created_at", "updated_at", "status", "applicant_name", "reference_number", "submitted_at"}


def serialize_application(application: Application) -> Dict[str, Any]:
    return serialize_document(application)


class ApplicationService:
    """Staff-side operations on visa applications."""

    async def get_application(self, application_id: Any) -> Application:
        application = await Application.get(to_object_id(application_id, "application id"))
        if application is None:
            raise ResourceNotFound("Application")
        return application

    def ensure_can_access(self, application: Application, actor: StaffUser) -> None:
        # Visa Officers work on their own queue and on unassigned applications
        if actor.role != StaffRole.VISA_OFFICER:
            return
        if application.assigned_officer is not None and application.assigned_officer != actor.id:
            raise InsufficientRole("Access denied. Application is assigned to another officer.",
                                   user_role=actor.role.value)

    async def create_application(self, data: ApplicationCreate, actor: StaffUser,
                                 context: Optional[RequestContext] = None) -> Application:
        assigned_officer = None
        if data.assigned_officer:
            officer = await StaffUser.get(to_object_id(data.assigned_officer, "officer id"))
            if officer is None or not officer.is_active:
                raise ResourceNotFound("Officer")
            assigned_officer = officer.id

        travel_dates = None
        if data.travel_date or data.return_date:
            travel_dates = TravelDates(from_date=data.travel_date, to_date=data.return_date)

        application = Application(
            applicant_name=data.applicant_name,
            applicant_email=str(data.applicant_email).lower(),
            applicant_phone=data.applicant_phone,
            passport_number=data.passport_number,
            visa_type=data.visa_type,
            travel_purpose=data.travel_purpose,
            destination=data.destination,
            duration=data.duration,
            travel_dates=travel_dates,
            additional_info=data.additional_info,
            status=ApplicationStatus.DRAFT,
            source=ApplicationSource.ADMIN,
            reference_number=application_reference(),
            assigned_officer=assigned_officer,
            created_by=actor.id,
        )
        await insert_with_reference(application, application_reference)

        await workflow_service.record_timeline(application.id, TimelineAction.CREATED, actor=actor,
                                               new_status=application.status.value,
                                               comment="Application created")
        await audit_service.log_event(
            AuditAction.APPLICATION_CREATED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"referenceNumber": application.reference_number, "visaType": application.visa_type},
        )
        logger.info("Application %s created by %s", application.reference_number, actor.email)
        return application

    async def list_applications(
        self,
        actor: StaffUser,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        visa_type: Optional[str] = None,
        assigned_officer: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)
        clauses: List[Dict[str, Any]] = []
        if status:
            clauses.append({"status": parse_status(ApplicationStatus, status).value})
        if visa_type:
            clauses.append({"visa_type": visa_type})
        if assigned_officer:
            clauses.append({"assigned_officer": to_object_id(assigned_officer, "officer id")})
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            clauses.append({"$or": [{"applicant_name": pattern}, {"applicant_email": pattern},
                                    {"reference_number": pattern}]})
        if actor.role == StaffRole.VISA_OFFICER:
            clauses.append({"$or": [{"assigned_officer": actor.id}, {"assigned_officer": None}]})

        query: Dict[str, Any] = {"$and": clauses} if clauses else {}
        field = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
        sort_key = f"-{field}" if sort_order.lower() == "desc" else field

        total = await Application.find(query).count()
        items = await Application.find(query).sort(sort_key).skip((page - 1) * limit).limit(limit).to_list()
        return {
            "applications": [serialize_application(a) for a in items],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    async def get_detail(self, application: Application) -> Dict[str, Any]:
        timeline = await ApplicationTimeline.find(
            ApplicationTimeline.application_id == application.id
        ).sort("-created_at").to_list()
        documents = await ApplicationDocument.find(
            ApplicationDocument.application_id == application.id
        ).sort("-created_at").to_list()
        return {
            "application": serialize_application(application),
            "timeline": [serialize_document(t) for t in timeline],
            "documents": [serialize_document(d) for d in documents],
        }

    async def update_application(self, application: Application, data: ApplicationUpdate, actor: StaffUser,
                                 context: Optional[RequestContext] = None) -> Application:
        if application.locked:
            raise LockedApplication("Application is locked and cannot be edited")

        changes = data.model_dump(exclude_unset=True)
        travel_date = changes.pop("travel_date", None)
        return_date = changes.pop("return_date", None)
        if "applicant_email" in changes and changes["applicant_email"]:
            changes["applicant_email"] = str(changes["applicant_email"]).lower()
        for key, value in changes.items():
            setattr(application, key, value)
        if travel_date or return_date:
            dates = application.travel_dates or TravelDates()
            application.travel_dates = TravelDates(from_date=travel_date or dates.from_date,
                                                   to_date=return_date or dates.to_date)
        await application.save()

        await audit_service.log_event(
            AuditAction.APPLICATION_UPDATED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"fields": sorted(changes.keys())},
        )
        return application

    async def add_note(self, application: Application, text: str, actor: StaffUser,
                       context: Optional[RequestContext] = None) -> Application:
        note = InternalNote(text=text.strip(), created_by=actor.id, created_by_name=actor.name)
        application.internal_notes.append(note)
        await application.save()

        await workflow_service.record_timeline(application.id, TimelineAction.NOTE_ADDED, actor=actor,
                                               comment=note.text[:200])
        await audit_service.log_event(
            AuditAction.APPLICATION_NOTE_ADDED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"referenceNumber": application.reference_number, "noteLength": len(note.text)},
        )
        return application

    async def add_comment(self, application: Application, text: str, visible_to_applicant: bool,
                          actor: StaffUser, context: Optional[RequestContext] = None) -> Application:
        comment = Comment(text=text.strip(), created_by=actor.id, created_by_name=actor.name,
                          is_visible_to_applicant=visible_to_applicant)
        application.comments.append(comment)
        await application.save()

        await workflow_service.record_timeline(application.id, TimelineAction.COMMENT_ADDED, actor=actor,
                                               comment=comment.text[:200],
                                               metadata={"visibleToApplicant": visible_to_applicant})
        await audit_service.log_event(
            AuditAction.APPLICATION_COMMENT_ADDED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"visibleToApplicant": visible_to_applicant},
        )
        return application

    async def get_stats(self, actor: Optional[StaffUser] = None) -> Dict[str, Any]:
        match: Dict[str, Any] = {}
        if actor is not None and actor.role == StaffRole.VISA_OFFICER:
            match = {"$or": [{"assigned_officer": actor.id}, {"assigned_officer": None}]}

        by_status = await Application.aggregate([
            {"$match": match},
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]).to_list()
        by_type = await Application.aggregate([
            {"$match": match},
            {"$group": {"_id": "$visa_type", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
        ]).to_list()
        total = await Application.find(match).count()
        without_documents = await Application.find(
            {"$and": [match, {"documents": {"$size": 0}}]} if match else {"documents": {"$size": 0}}
        ).count()
        recent = await ApplicationTimeline.find({}).sort("-created_at").limit(10).to_list()

        status_counts = {s.value: 0 for s in ApplicationStatus}
        for row in by_status:
            status_counts[row["_id"]] = row["count"]
        return {
            "total": total,
            "byStatus": status_counts,
            "byVisaType": [{"visaType": row["_id"], "count": row["count"]} for row in by_type],
            "withoutDocuments": without_documents,
            "recentActivity": [serialize_document(t) for t in recent],
        }

    async def delete_application(self, application: Application, actor: StaffUser,
                                 context: Optional[RequestContext] = None) -> Dict[str, Any]:
        """Delete an application and everything it owns: documents, stored files and timeline."""
        documents = await ApplicationDocument.find(ApplicationDocument.application_id == application.id).to_list()
        for document in documents:
            if document.file_path:
                file_storage.remove_file(document.file_path)
            await document.delete()
        file_storage.remove_application_folder(str(application.id))
        await ApplicationTimeline.find(ApplicationTimeline.application_id == application.id).delete()
        await application.delete()

        await audit_service.log_event(
            AuditAction.APPLICATION_DELETED,
            user=actor,
            context=context,
            entity_type="Application",
            entity_id=application.id,
            metadata={"referenceNumber": application.reference_number, "documentsDeleted": len(documents)},
        )
        logger.info("Application %s deleted with %d documents by %s", application.reference_number,
                    len(documents), actor.email)
        return {"id": str(application.id), "documentsDeleted": len(documents)}

    async def bulk_delete(self, ids: List[str], actor: StaffUser,
                          context: Optional[RequestContext] = None) -> Dict[str, Any]:
        object_ids = [(raw_id, to_object_id(raw_id, "application id")) for raw_id in ids]
        deleted: List[str] = []
        skipped: List[str] = []
        for raw_id, object_id in object_ids:
            application = await Application.get(object_id)
            if application is None:
                skipped.append(raw_id)
                continue
            if actor.role != StaffRole.SUPER_ADMIN and application.created_by != actor.id:
                skipped.append(raw_id)
                continue
            await self.delete_application(application, actor, context)
            deleted.append(raw_id)
        return {"deletedCount": len(deleted), "deleted": deleted, "skipped": skipped}


application_service = ApplicationService()
