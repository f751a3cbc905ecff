import logging
from typing import Any, Dict, Optional

from agency_backend.core.exceptions import DuplicateResource, LastSuperAdmin, ResourceNotFound, ValidationFailed
from agency_backend.core.security import hash_password
from agency_backend.database.models import StaffUser
from agency_backend.helpers.response_builder import serialize_user
from agency_backend.schemas.enums import AuditAction, StaffRole
from agency_backend.schemas.user_schemas import StaffUserCreate, StaffUserUpdate
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.services.workflow_service import to_object_id
from agency_backend.utils.time_utils import start_of_day

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class UserService:
    """Staff account management. The last active Super Admin can never be removed."""

    async def get_user(self, user_id: Any) -> StaffUser:
        user = await StaffUser.get(to_object_id(user_id, "user id"))
        if user is None:
            raise ResourceNotFound("User")
        return user

    async def find_by_email(self, email: str) -> Optional[StaffUser]:
        if not email:
            return None
        return await StaffUser.find_one(StaffUser.email == email.strip().lower())

    async def count_active_super_admins(self) -> int:
        return await StaffUser.find(
            {"role": StaffRole.SUPER_ADMIN.value, "is_active": True}
        ).count()

    async def _guard_last_super_admin(self, target: StaffUser) -> None:
        if target.role == StaffRole.SUPER_ADMIN and target.is_active:
            if await self.count_active_super_admins() <= 1:
                raise LastSuperAdmin()

    async def list_users(self, page: int = 1, limit: int = 20, role: Optional[str] = None,
                         is_active: Optional[bool] = None) -> Dict[str, Any]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        page = max(1, page)
        query: Dict[str, Any] = {}
        if role:
            try:
                query["role"] = StaffRole(role).value
            except ValueError:
                raise ValidationFailed(f"Invalid role '{role}'", details={"validRoles": [r.value for r in StaffRole]})
        if is_active is not None:
            query["is_active"] = is_active
        total = await StaffUser.find(query).count()
        users = await StaffUser.find(query).sort("-created_at").skip((page - 1) * limit).limit(limit).to_list()
        return {
            "users": [serialize_user(u) for u in users],
            "pagination": {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
        }

    async def create_user(self, data: StaffUserCreate, actor: Optional[StaffUser] = None,
                          context: Optional[RequestContext] = None) -> StaffUser:
        email = str(data.email).lower()
        if await self.find_by_email(email):
            raise DuplicateResource("A user with this email already exists")
        try:
            password_hash = hash_password(data.password)
        except ValueError as e:
            raise ValidationFailed(str(e))

        user = StaffUser(name=data.name, email=email, password_hash=password_hash, role=data.role)
        await user.insert()
        await audit_service.log_event(
            AuditAction.ADMIN_CREATED,
            user=actor,
            context=context,
            entity_type="StaffUser",
            entity_id=user.id,
            metadata={"email": user.email, "role": user.role.value},
        )
        logger.info("Staff user %s created with role %s", user.email, user.role.value)
        return user

    async def update_user(self, target: StaffUser, data: StaffUserUpdate, actor: StaffUser,
                          context: Optional[RequestContext] = None) -> StaffUser:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return target

        demoted = "role" in changes and changes["role"] != StaffRole.SUPER_ADMIN
        deactivated = changes.get("is_active") is False
        if demoted or deactivated:
            await self._guard_last_super_admin(target)
        if deactivated and target.id == actor.id:
            raise ValidationFailed("You cannot deactivate your own account")

        if "email" in changes:
            email = str(changes["email"]).lower()
            existing = await self.find_by_email(email)
            if existing and existing.id != target.id:
                raise DuplicateResource("A user with this email already exists")
            changes["email"] = email

        was_active = target.is_active
        for key, value in changes.items():
            setattr(target, key, value)
        if deactivated:
            # deactivated accounts lose their sessions
            target.refresh_tokens = []
        await target.save()

        meta = {k: (v.value if isinstance(v, StaffRole) else v) for k, v in changes.items()}
        await audit_service.log_event(AuditAction.ADMIN_UPDATED, user=actor, context=context,
                                      entity_type="StaffUser", entity_id=target.id, metadata=meta)
        if was_active != target.is_active:
            action = AuditAction.ADMIN_ACTIVATED if target.is_active else AuditAction.ADMIN_DEACTIVATED
            await audit_service.log_event(action, user=actor, context=context,
                                          entity_type="StaffUser", entity_id=target.id,
                                          metadata={"email": target.email})
        return target

    async def update_profile(self, user: StaffUser, name: Optional[str], context: Optional[RequestContext] = None):
        if name:
            user.name = name.strip()
            await user.save()
            await audit_service.log_event(AuditAction.PROFILE_UPDATE, user=user, context=context,
                                          entity_type="StaffUser", entity_id=user.id)
        return user

    async def delete_user(self, target: StaffUser, actor: StaffUser, context: Optional[RequestContext] = None):
        await self._guard_last_super_admin(target)
        if target.id == actor.id:
            raise ValidationFailed("You cannot delete your own account")
        await target.delete()
        await audit_service.log_event(
            AuditAction.ADMIN_DELETED,
            user=actor,
            context=context,
            entity_type="StaffUser",
            entity_id=target.id,
            metadata={"email": target.email, "role": target.role.value},
        )
        logger.info("Staff user %s deleted by %s", target.email, actor.email)

    async def dashboard_metrics(self) -> Dict[str, Any]:
        total_active = await StaffUser.find({"is_active": True}).count()
        active_today = await StaffUser.find({"is_active": True, "last_login": {"$gte": start_of_day()}}).count()
        by_role = await StaffUser.aggregate([
            {"$match": {"is_active": True}},
            {"$group": {"_id": "$role", "count": {"$sum": 1}}},
        ]).to_list()
        return {
            "totalActiveAdmins": total_active,
            "activeToday": active_today,
            "byRole": {row["_id"]: row["count"] for row in by_role},
        }


user_service = UserService()
