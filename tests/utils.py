from agency_backend.core.security import create_access_token
from agency_backend.database.models import AuditLog, StaffUser
from agency_backend.schemas.enums import AuditAction

DEFAULT_PASSWORD = "Password123!"


def auth_headers(user: StaffUser) -> dict:
    token = create_access_token({"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


async def audit_records(action: AuditAction):
    return await AuditLog.find({"action": action.value}).to_list()


def pdf_file(name: str = "passport.pdf", content: bytes = b"%PDF-1.4 test document"):
    return (name, content, "application/pdf")
