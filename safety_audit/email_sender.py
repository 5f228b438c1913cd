"""
Email Sender

Delivers rendered notification emails through the Resend HTTP API.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from safety_audit.email_templates import EmailTemplates, build_subject
from safety_audit.schemas import EmailRequest
from safety_audit.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailConfigurationError(Exception):
    """Email delivery is not configured (missing API key)."""


class EmailValidationError(ValueError):
    """The request lacks the recipient fields every email needs."""


@dataclass
class EmailSendResult:
    """Result of a single delivery attempt."""
    success: bool
    email_id: Optional[str] = None
    error: Optional[str] = None


class ResendEmailSender:
    """Single-attempt sender; callers decide whether a failure matters."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        templates: Optional[EmailTemplates] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.templates = templates or EmailTemplates(self.settings.frontend_url)

    def send(self, request: EmailRequest) -> EmailSendResult:
        data = request.email_data
        if not data.recipient_email or not data.recipient_name:
            raise EmailValidationError("Missing required email data")

        if not self.settings.resend_api_key:
            logger.error("RESEND_API_KEY not configured")
            raise EmailConfigurationError("Email service not configured")

        payload = {
            "from": self.settings.from_email,
            "to": [data.recipient_email],
            "subject": build_subject(request.type, data, request.title),
            "html": self.templates.render(request.type, data, request.title, request.message),
        }
        headers = {
            "Authorization": f"Bearer {self.settings.resend_api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self.client is not None:
                response = self.client.post(self.settings.resend_api_url, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=self.settings.http_timeout_seconds) as client:
                    response = client.post(self.settings.resend_api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send email to {data.recipient_email}: {e}")
            return EmailSendResult(success=False, error=str(e))

        if response.is_success:
            email_id = None
            try:
                email_id = response.json().get("id")
            except ValueError:
                pass
            logger.info(f"Email sent to {data.recipient_email} ({request.type}), id={email_id}")
            return EmailSendResult(success=True, email_id=email_id)

        logger.error(f"Failed to send email: {response.status_code} - {response.text}")
        return EmailSendResult(success=False, error=f"{response.status_code} - {response.text}")
