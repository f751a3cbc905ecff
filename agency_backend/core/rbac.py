"""Role to permission table used by the route guards.

The table is built once at startup by :func:`load_rbac_policy` and stored on
``app.state.rbac_policy``; guards read it from there instead of importing a
module-level dictionary.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import FrozenSet, Iterable, Mapping, Optional

from agency_backend.schemas.enums import StaffRole

WILDCARD = "*"

DEFAULT_ROLE_PERMISSIONS = {
    StaffRole.SUPER_ADMIN: (WILDCARD,),
    StaffRole.VISA_OFFICER: (
        "visa:read",
        "visa:update",
        "visa:create",
        "applicants:read",
        "applicants:update",
        "dashboard:read",
    ),
    StaffRole.FINANCE_OFFICER: (
        "payments:read",
        "payments:update",
        "payments:create",
        "reports:read",
        "dashboard:read",
    ),
    StaffRole.REVIEWER: (
        "applications:read",
        "applications:review",
        "dashboard:read",
    ),
    StaffRole.READ_ONLY: (
        "dashboard:read",
        "logs:read",
    ),
}


@dataclass(frozen=True)
class RbacPolicy:
    permissions: Mapping[StaffRole, FrozenSet[str]]

    def permissions_for(self, role: StaffRole) -> FrozenSet[str]:
        return self.permissions.get(StaffRole(role), frozenset())

    def is_super_admin(self, role: StaffRole) -> bool:
        return WILDCARD in self.permissions_for(role)

    def is_role_allowed(self, role: StaffRole, allowed: Iterable[StaffRole]) -> bool:
        allowed = {StaffRole(r) for r in allowed}
        if not allowed:
            return True
        return self.is_super_admin(role) or StaffRole(role) in allowed

    def has_permission(self, role: StaffRole, permission: str) -> bool:
        granted = self.permissions_for(role)
        return WILDCARD in granted or permission in granted


def load_rbac_policy(permissions: Optional[Mapping[StaffRole, Iterable[str]]] = None) -> RbacPolicy:
    permissions = permissions if permissions is not None else DEFAULT_ROLE_PERMISSIONS
    frozen = {StaffRole(role): frozenset(perms) for role, perms in permissions.items()}
    return RbacPolicy(permissions=MappingProxyType(frozen))
