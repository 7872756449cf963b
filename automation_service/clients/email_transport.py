"""
SendGrid Email Client

Sends workflow emails through the SendGrid v3 mail/send API.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..config import get_automation_settings
from ..errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


@runtime_checkable
class EmailTransport(Protocol):
    """send_email(...) -> provider message id"""

    async def send_email(
        self,
        to_email: str,
        from_email: str,
        from_name: Optional[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> str: ...


class SendGridEmailClient:
    """
    Email transport backed by SendGrid.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_automation_settings()
        self.api_key = api_key or settings.sendgrid_api_key
        self.api_base = api_base or settings.sendgrid_api_base
        self.transport = transport

        if not self.api_key:
            logger.warning("Email sending disabled - SENDGRID_API_KEY not set")

    async def send_email(
        self,
        to_email: str,
        from_email: str,
        from_name: Optional[str],
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> str:
        """
        Send an email via SendGrid.

        Args:
            to_email: Recipient email address
            from_email: Verified sender address
            from_name: Sender display name
            subject: Email subject
            html_content: HTML email body
            text_content: Plain text part (optional)

        Returns:
            SendGrid message ID (may be empty)

        Raises:
            ConfigurationError: No API key configured
            ProviderError: SendGrid rejected the request or was unreachable
        """
        if not self.api_key:
            raise ConfigurationError("SendGrid API key is not configured")

        sender = {"email": from_email}
        if from_name:
            sender["name"] = from_name

        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": sender,
            "subject": subject,
            "content": [
                {"type": "text/html", "value": html_content},
            ],
        }

        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_base}/mail/send",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Email error: {e}")
            raise ProviderError("sendgrid", str(e)) from e

        if response.status_code not in (200, 202):
            logger.error(f"Email failed ({response.status_code}): {response.text}")
            raise ProviderError("sendgrid", f"HTTP {response.status_code}: {response.text[:200]}")

        logger.info(f"Email sent: {subject} to {to_email}")
        return response.headers.get("X-Message-Id", "")
