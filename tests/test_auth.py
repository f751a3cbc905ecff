from urllib.parse import parse_qs, urlparse

import pytest

from agency_backend.database.models import AuditLog, StaffUser
from agency_backend.schemas.enums import AuditAction, StaffRole
from agency_backend.services.notification_service import notification_service
from tests.utils import DEFAULT_PASSWORD, audit_records, auth_headers

LOGIN_URL = "/admin/api/auth/login"


async def login(client, email, password=DEFAULT_PASSWORD):
    return await client.post(LOGIN_URL, json={"email": email, "password": password})


async def test_successful_login_returns_tokens_and_user(client, visa_officer):
    response = await login(client, "Officer@FafaliGroup.org")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["access_token"] and data["refresh_token"]
    assert data["user"]["role"] == "Visa Officer"
    assert "password_hash" not in data["user"]
    stored = await StaffUser.get(visa_officer.id)
    assert stored.last_login is not None
    assert len(stored.refresh_tokens) == 1


@pytest.mark.parametrize(
    "email, password, expected_status, reason",
    [
        ("officer@fafaligroup.org", DEFAULT_PASSWORD, 200, None),
        ("officer@fafaligroup.org", "wrong-password", 401, "Invalid password"),
        ("nobody@fafaligroup.org", DEFAULT_PASSWORD, 401, "User not found"),
        ("", "", 400, "Missing credentials"),
    ],
)
async def test_every_login_attempt_writes_one_audit_record(client, visa_officer, email, password,
                                                           expected_status, reason):
    response = await login(client, email, password)

    assert response.status_code == expected_status
    logs = await AuditLog.find({"action": {"$in": ["LOGIN_SUCCESS", "LOGIN_FAILED"]}}).to_list()
    assert len(logs) == 1
    if reason is None:
        assert logs[0].action == AuditAction.LOGIN_SUCCESS
    else:
        assert logs[0].metadata["reason"] == reason
        assert logs[0].success is False


@pytest.mark.parametrize(
    "password, expected_status",
    [(DEFAULT_PASSWORD, 200), ("wrong-password", 401)],
)
async def test_login_completes_when_the_audit_write_fails(client, monkeypatch, visa_officer, password,
                                                          expected_status):
    async def broken_insert(self, *args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(AuditLog, "insert", broken_insert)

    response = await login(client, "officer@fafaligroup.org", password)

    assert response.status_code == expected_status
    if expected_status == 200:
        assert response.json()["data"]["access_token"]
    else:
        assert response.json()["error"] == "Invalid credentials"
    assert await AuditLog.find({}).count() == 0


async def test_wrong_password_and_unknown_user_look_the_same(client, visa_officer):
    wrong = await login(client, "officer@fafaligroup.org", "wrong-password")
    unknown = await login(client, "nobody@fafaligroup.org")
    assert wrong.json()["error"] == unknown.json()["error"] == "Invalid credentials"


async def test_deactivated_account_cannot_log_in(client, make_user):
    await make_user(StaffRole.REVIEWER, email="gone@fafaligroup.org", is_active=False)

    response = await login(client, "gone@fafaligroup.org")

    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_DEACTIVATED"
    records = await audit_records(AuditAction.LOGIN_FAILED)
    assert records[0].status_code == 403


async def test_refresh_rotates_the_token(client, visa_officer):
    tokens = (await login(client, "officer@fafaligroup.org")).json()["data"]

    rotated = await client.post("/admin/api/auth/refresh", json={"refreshToken": tokens["refresh_token"]})
    assert rotated.status_code == 200
    new_refresh = rotated.json()["data"]["refresh_token"]
    assert new_refresh != tokens["refresh_token"]

    reused = await client.post("/admin/api/auth/refresh", json={"refreshToken": tokens["refresh_token"]})
    assert reused.status_code == 401
    assert len(await audit_records(AuditAction.REFRESH_TOKEN)) == 1


async def test_refresh_rejects_access_tokens(client, visa_officer):
    tokens = (await login(client, "officer@fafaligroup.org")).json()["data"]
    response = await client.post("/admin/api/auth/refresh", json={"refreshToken": tokens["access_token"]})
    assert response.status_code == 401


async def test_logout_revokes_the_refresh_token(client, visa_officer):
    tokens = (await login(client, "officer@fafaligroup.org")).json()["data"]
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    response = await client.post("/admin/api/auth/logout", json={"refreshToken": tokens["refresh_token"]},
                                 headers=headers)

    assert response.status_code == 200
    assert (await StaffUser.get(visa_officer.id)).refresh_tokens == []
    refused = await client.post("/admin/api/auth/refresh", json={"refreshToken": tokens["refresh_token"]})
    assert refused.status_code == 401
    assert len(await audit_records(AuditAction.LOGOUT)) == 1


async def test_change_password_requires_the_current_one(client, visa_officer):
    headers = auth_headers(visa_officer)

    refused = await client.post("/admin/api/auth/change-password", headers=headers,
                                json={"currentPassword": "not-it-at-all", "newPassword": "NewPassword456!"})
    assert refused.status_code == 401
    assert len(await audit_records(AuditAction.PASSWORD_CHANGE_FAILED)) == 1

    changed = await client.post("/admin/api/auth/change-password", headers=headers,
                                json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "NewPassword456!"})
    assert changed.status_code == 200
    assert (await login(client, "officer@fafaligroup.org", "NewPassword456!")).status_code == 200


async def test_change_password_enforces_minimum_length(client, visa_officer):
    response = await client.post("/admin/api/auth/change-password", headers=auth_headers(visa_officer),
                                 json={"currentPassword": DEFAULT_PASSWORD, "newPassword": "short"})
    assert response.status_code == 400


@pytest.fixture
def sent_reset_links(monkeypatch):
    links = []

    async def capture(to, name, link):
        links.append((to, link))
        return True

    monkeypatch.setattr(notification_service, "send_password_reset", capture)
    return links


async def test_forgot_password_does_not_reveal_accounts(client, visa_officer, sent_reset_links):
    known = await client.post("/admin/api/auth/forgot-password", json={"email": "officer@fafaligroup.org"})
    unknown = await client.post("/admin/api/auth/forgot-password", json={"email": "nobody@fafaligroup.org"})

    assert known.status_code == unknown.status_code == 200
    assert known.json()["message"] == unknown.json()["message"]
    assert [to for to, _ in sent_reset_links] == ["officer@fafaligroup.org"]
    assert len(await audit_records(AuditAction.PASSWORD_RESET_REQUEST)) == 2


async def test_reset_token_works_once(client, visa_officer, sent_reset_links):
    await client.post("/admin/api/auth/forgot-password", json={"email": "officer@fafaligroup.org"})
    token = parse_qs(urlparse(sent_reset_links[0][1]).query)["token"][0]

    first = await client.post("/admin/api/auth/reset-password",
                              json={"token": token, "newPassword": "BrandNewPass789!"})
    second = await client.post("/admin/api/auth/reset-password",
                               json={"token": token, "newPassword": "AnotherPass000!"})

    assert first.status_code == 200
    assert second.status_code == 401
    assert (await login(client, "officer@fafaligroup.org", "BrandNewPass789!")).status_code == 200
    assert len(await audit_records(AuditAction.PASSWORD_RESET_COMPLETE)) == 1


async def test_legacy_login_and_me(client, finance_officer):
    response = await client.post("/api/auth/login",
                                 json={"email": "finance@fafaligroup.org", "password": DEFAULT_PASSWORD})
    assert response.status_code == 200
    token = response.json()["data"]["access_token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["email"] == "finance@fafaligroup.org"


async def test_legacy_register_is_super_admin_only(client, super_admin, visa_officer):
    payload = {"name": "New Reviewer", "email": "new@fafaligroup.org", "password": "Password123!", "role": "reviewer"}

    refused = await client.post("/api/auth/register", json=payload, headers=auth_headers(visa_officer))
    created = await client.post("/api/auth/register", json=payload, headers=auth_headers(super_admin))

    assert refused.status_code == 403
    assert created.status_code == 201
    assert created.json()["data"]["role"] == "Reviewer"
