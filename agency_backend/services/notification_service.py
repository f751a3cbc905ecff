"""
E-mail notifications sent through an HTTP mail relay.

The relay receives ``{"from", "to", "subject", "html", "text"}`` as JSON with a
bearer API key. When EMAIL_API_URL is not set, sending is skipped and logged.
"""

import html
import logging
from typing import Optional

import httpx

from agency_backend.core.config import settings

logger = logging.getLogger(__name__)


STATUS_TEMPLATES = {
    "Submitted": (
        "Application Received - {reference}",
        "Thank you for your visa application. We have received it and will begin processing shortly.",
    ),
    "Queried": (
        "Action Required - {reference}",
        "We need additional information or documents for your application. Please check your application status page.",
    ),
    "Approved": (
        "Application Approved - {reference}",
        "Congratulations! Your visa application has been approved.",
    ),
    "Rejected": (
        "Application Update - {reference}",
        "We regret to inform you that your visa application was not approved. Contact us for details.",
    ),
}


class NotificationService:
    """Service for sending transactional e-mails."""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None, sender: Optional[str] = None):
        self.api_url = api_url if api_url is not None else settings.EMAIL_API_URL
        self.api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self.sender = sender or settings.EMAIL_FROM

        if not self.api_url:
            logger.warning("E-mail relay not configured. Set EMAIL_API_URL to enable notifications")

    @property
    def configured(self) -> bool:
        return bool(self.api_url)

    @staticmethod
    def _mask_email(address: str) -> str:
        name, _, domain = (address or "").partition("@")
        return f"{name[:2]}***@{domain}" if domain else "***"

    async def send_email(self, to: str, subject: str, body_html: str, body_text: Optional[str] = None) -> bool:
        """
        Send one e-mail.

        Returns:
            bool: True when the relay accepted the message, False otherwise.
        """
        if not self.configured:
            logger.info("E-mail to %s skipped, relay not configured", self._mask_email(to))
            return False

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "from": self.sender,
            "to": to,
            "subject": subject,
            "html": body_html,
            "text": body_text or subject,
        }

        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(self.api_url, headers=headers, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("E-mail to %s failed: %s", self._mask_email(to), e)
            return False

        logger.info("E-mail sent to %s (%s)", self._mask_email(to), subject)
        return True

    async def send_application_confirmation(self, application) -> bool:
        name = html.escape(application.applicant_name)
        reference = application.reference_number
        body = (
            f"<p>Dear {name},</p>"
            f"<p>Thank you for submitting your {html.escape(application.visa_type)} application.</p>"
            f"<p>Your reference number is <strong>{reference}</strong>. "
            "Keep it to check your application status.</p>"
        )
        return await self.send_email(application.applicant_email, f"Application Received - {reference}", body)

    async def send_admin_application_alert(self, application) -> bool:
        body = (
            "<p>A new visa application was submitted through the website.</p>"
            f"<ul><li>Reference: {application.reference_number}</li>"
            f"<li>Applicant: {html.escape(application.applicant_name)} ({html.escape(application.applicant_email)})</li>"
            f"<li>Visa type: {html.escape(application.visa_type)}</li></ul>"
        )
        return await self.send_email(
            settings.ADMIN_NOTIFICATION_EMAIL,
            f"New Visa Application - {application.reference_number}",
            body,
        )

    async def send_application_status_update(self, application) -> bool:
        template = STATUS_TEMPLATES.get(application.status.value)
        if template is None:
            return False
        subject, message = template
        body = f"<p>Dear {html.escape(application.applicant_name)},</p><p>{message}</p>"
        return await self.send_email(
            application.applicant_email,
            subject.format(reference=application.reference_number),
            body,
            message,
        )

    async def send_password_reset(self, to: str, name: str, link: str) -> bool:
        body = (
            f"<p>Dear {html.escape(name)},</p>"
            f"<p>Use the link below to reset your password. It expires in "
            f"{settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES} minutes.</p>"
            f'<p><a href="{html.escape(link)}">Reset password</a></p>'
        )
        return await self.send_email(to, "Password Reset Request", body, f"Reset your password: {link}")

    async def send_booking_confirmation(self, booking) -> bool:
        body = (
            f"<p>Dear {html.escape(booking.customer_name)},</p>"
            f"<p>We received your booking request for <strong>{html.escape(booking.tour_name)}</strong>.</p>"
            f"<p>Your booking reference is <strong>{booking.reference_number}</strong>.</p>"
        )
        return await self.send_email(booking.customer_email, f"Booking Received - {booking.reference_number}", body)


notification_service = NotificationService()
