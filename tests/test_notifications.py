from types import SimpleNamespace

import httpx
import pytest

from agency_backend.schemas.enums import ApplicationStatus
from agency_backend.services.notification_service import NotificationService


@pytest.fixture
def relay(monkeypatch):
    sent = []

    async def fake_post(self, url, headers=None, json=None):
        sent.append({"url": url, "headers": headers, "json": json})
        return httpx.Response(202, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", fake_post)
    return sent


def application(status=ApplicationStatus.APPROVED):
    return SimpleNamespace(
        reference_number="FAF-TEST01",
        applicant_name="Kwame <Mensah>",
        applicant_email="kwame@example.com",
        visa_type="Tourist",
        status=status,
    )


async def test_unconfigured_relay_skips_sending(relay):
    service = NotificationService(api_url="", api_key="")

    assert await service.send_email("kwame@example.com", "Hello", "<p>Hi</p>") is False
    assert relay == []


async def test_status_update_uses_template_and_escapes_names(relay):
    service = NotificationService(api_url="https://mail.example.com/send", api_key="secret")

    assert await service.send_application_status_update(application()) is True

    message = relay[0]
    assert message["headers"]["Authorization"] == "Bearer secret"
    assert message["json"]["subject"] == "Application Approved - FAF-TEST01"
    assert "Kwame &lt;Mensah&gt;" in message["json"]["html"]


async def test_statuses_without_template_send_nothing(relay):
    service = NotificationService(api_url="https://mail.example.com/send")

    assert await service.send_application_status_update(application(ApplicationStatus.UNDER_REVIEW)) is False
    assert relay == []


async def test_relay_failure_returns_false(monkeypatch):
    async def failing_post(self, url, headers=None, json=None):
        return httpx.Response(500, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", failing_post)
    service = NotificationService(api_url="https://mail.example.com/send")

    assert await service.send_email("kwame@example.com", "Hello", "<p>Hi</p>") is False
