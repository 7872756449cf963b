"""
Twilio SMS Client

Sends outbound SMS through the Twilio Messages REST API.

Docs: https://www.twilio.com/docs/messaging/api/message-resource
"""

import logging
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..config import get_automation_settings
from ..errors import ConfigurationError, ProviderError

logger = logging.getLogger(__name__)


@runtime_checkable
class SmsTransport(Protocol):
    """send_sms(to, from, body) -> provider message id"""

    async def send_sms(self, to: str, from_number: str, body: str) -> str: ...


class TwilioSmsClient:
    """
    Client for the Twilio Messages API.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Twilio client.

        Args:
            account_sid: Twilio account SID (defaults to settings)
            auth_token: Twilio auth token (defaults to settings)
            api_base: API base URL (defaults to settings)
            transport: httpx transport override (tests, proxies)
        """
        settings = get_automation_settings()
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.api_base = api_base or settings.twilio_api_base
        self.transport = transport

        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=30.0,
                auth=(self.account_sid or "", self.auth_token or ""),
                transport=self.transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_sms(self, to: str, from_number: str, body: str) -> str:
        """
        Send an SMS.

        Args:
            to: Recipient phone (E.164)
            from_number: Workspace outbound number (E.164)
            body: Message text

        Returns:
            Twilio message SID

        Raises:
            ConfigurationError: Twilio credentials not configured
            ProviderError: Twilio rejected the request or was unreachable
        """
        if not self.account_sid or not self.auth_token:
            raise ConfigurationError("Twilio credentials are not configured")

        client = await self._get_client()
        url = f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

        try:
            response = await client.post(url, data={"To": to, "From": from_number, "Body": body})
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed: {e}")
            raise ProviderError("twilio", str(e)) from e

        if response.status_code not in (200, 201):
            logger.error(f"Twilio error ({response.status_code}): {response.text}")
            raise ProviderError("twilio", f"HTTP {response.status_code}: {response.text[:200]}")

        sid = response.json().get("sid", "")
        logger.info(f"SMS sent to {to} (sid: {sid})")
        return sid
