from datetime import timedelta

import pytest
from beanie import PydanticObjectId

from agency_backend.core.exceptions import ImmutableRecord
from agency_backend.database.models import AuditLog
from agency_backend.schemas.enums import AuditAction
from agency_backend.services.audit_service import RequestContext, audit_service
from agency_backend.utils.time_utils import utcnow
from tests.utils import auth_headers


async def test_log_event_persists_with_context(super_admin):
    context = RequestContext(ip_address="10.0.0.1", user_agent="pytest", path="/admin/api/x", method="POST")

    result = await audit_service.log_event(AuditAction.PROFILE_UPDATE, user=super_admin, context=context,
                                           metadata={"field": "name"})

    assert result.recorded is True
    stored = await AuditLog.get(PydanticObjectId(result.log_id))
    assert stored.user_id == super_admin.id
    assert stored.user_email == "admin@fafaligroup.org"
    assert stored.ip_address == "10.0.0.1"
    assert stored.metadata == {"field": "name"}


async def test_log_event_never_raises(monkeypatch):
    async def broken_insert(self, *args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(AuditLog, "insert", broken_insert)

    result = await audit_service.log_failed_login("someone@example.com", reason="User not found")

    assert result.recorded is False
    assert "database unavailable" in result.error


async def test_failed_login_email_is_lowercased():
    await audit_service.log_failed_login("  Someone@Example.COM ", reason="User not found")
    stored = await AuditLog.find_one({"action": AuditAction.LOGIN_FAILED.value})
    assert stored.user_email == "someone@example.com"
    assert stored.user_id is None
    assert stored.success is False


async def test_audit_entries_are_immutable(super_admin):
    result = await audit_service.log_login(super_admin)
    stored = await AuditLog.get(PydanticObjectId(result.log_id))

    stored.success = False
    with pytest.raises(ImmutableRecord):
        await stored.save()
    with pytest.raises(ImmutableRecord):
        await stored.delete()
    assert (await AuditLog.get(PydanticObjectId(result.log_id))).success is True


async def test_get_logs_filters_and_paginates(super_admin, visa_officer):
    for _ in range(3):
        await audit_service.log_login(visa_officer)
    await audit_service.log_logout(super_admin)
    await audit_service.log_failed_login("ghost@example.com")

    page = await audit_service.get_logs(page=1, limit=2, filters={"action": "LOGIN_SUCCESS"})
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert all(log.user_id == visa_officer.id for log in page["logs"])

    failures = await audit_service.get_logs(filters={"success": False})
    assert [log.user_email for log in failures["logs"]] == ["ghost@example.com"]

    future = await audit_service.get_logs(filters={"start_date": utcnow() + timedelta(days=1)})
    assert future["pagination"]["total"] == 0


async def test_audit_log_route(client, super_admin):
    await audit_service.log_failed_login("ghost@example.com")

    response = await client.get("/admin/api/audit-logs", params={"action": "LOGIN_FAILED"},
                                headers=auth_headers(super_admin))

    assert response.status_code == 200
    logs = response.json()["data"]["logs"]
    assert len(logs) == 1
    assert logs[0]["user_email"] == "ghost@example.com"


async def test_audit_log_route_rejects_unknown_action(client, super_admin):
    response = await client.get("/admin/api/audit-logs", params={"action": "NOT_A_THING"},
                                headers=auth_headers(super_admin))
    assert response.status_code == 400
    assert "LOGIN_FAILED" in response.json()["validActions"]


async def test_audit_log_route_is_super_admin_only(client, read_only):
    response = await client.get("/admin/api/audit-logs", headers=auth_headers(read_only))
    assert response.status_code == 403
