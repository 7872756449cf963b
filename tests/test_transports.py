"""
Tests for the Twilio and SendGrid transports against mocked HTTP.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from automation_service.clients.email_transport import SendGridEmailClient
from automation_service.clients.sms_transport import TwilioSmsClient
from automation_service.config import get_automation_settings
from automation_service.errors import ConfigurationError, ProviderError


@pytest.fixture
def no_credentials(monkeypatch):
    settings = get_automation_settings()
    monkeypatch.setattr(settings, "twilio_account_sid", None)
    monkeypatch.setattr(settings, "twilio_auth_token", None)
    monkeypatch.setattr(settings, "sendgrid_api_key", None)
    return settings


# =============================================================================
# Twilio
# =============================================================================


@pytest.mark.asyncio
async def test_twilio_send_sms():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"sid": "SM123"})

    client = TwilioSmsClient("AC1", "secret", transport=httpx.MockTransport(handler))
    sid = await client.send_sms(to="+15553334444", from_number="+15550002222", body="Hi Max")
    await client.close()

    assert sid == "SM123"
    request = requests[0]
    assert request.url.path.endswith("/Accounts/AC1/Messages.json")
    assert request.headers["authorization"].startswith("Basic ")
    form = parse_qs(request.content.decode())
    assert form == {"To": ["+15553334444"], "From": ["+15550002222"], "Body": ["Hi Max"]}


@pytest.mark.asyncio
async def test_twilio_error_status_is_provider_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"message": "invalid To"}))
    client = TwilioSmsClient("AC1", "secret", transport=transport)

    with pytest.raises(ProviderError, match="HTTP 400") as exc_info:
        await client.send_sms(to="bad", from_number="+15550002222", body="Hi")
    await client.close()

    assert exc_info.value.provider == "twilio"


@pytest.mark.asyncio
async def test_twilio_network_error_is_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = TwilioSmsClient("AC1", "secret", transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderError, match="connection refused"):
        await client.send_sms(to="+15553334444", from_number="+15550002222", body="Hi")
    await client.close()


@pytest.mark.asyncio
async def test_twilio_requires_credentials(no_credentials):
    calls = []
    client = TwilioSmsClient(transport=httpx.MockTransport(lambda request: calls.append(request)))

    with pytest.raises(ConfigurationError):
        await client.send_sms(to="+15553334444", from_number="+15550002222", body="Hi")
    assert calls == []


# =============================================================================
# SendGrid
# =============================================================================


@pytest.mark.asyncio
async def test_sendgrid_send_email():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202, headers={"X-Message-Id": "msg-42"})

    client = SendGridEmailClient("SG.key", transport=httpx.MockTransport(handler))
    message_id = await client.send_email(
        to_email="max@example.com",
        from_email="hello@sunsetdental.com",
        from_name="Sunset Dental Team",
        subject="Thanks Max",
        html_content="<p>Thanks</p>",
        text_content="Thanks",
    )

    assert message_id == "msg-42"
    request = requests[0]
    assert request.url.path.endswith("/mail/send")
    assert request.headers["authorization"] == "Bearer SG.key"
    payload = json.loads(request.content)
    assert payload["from"] == {"email": "hello@sunsetdental.com", "name": "Sunset Dental Team"}
    assert payload["personalizations"] == [{"to": [{"email": "max@example.com"}]}]
    assert [c["type"] for c in payload["content"]] == ["text/plain", "text/html"]


@pytest.mark.asyncio
async def test_sendgrid_error_status_is_provider_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="upstream down"))
    client = SendGridEmailClient("SG.key", transport=transport)

    with pytest.raises(ProviderError, match="HTTP 500") as exc_info:
        await client.send_email("max@example.com", "hello@sunsetdental.com", None, "Hi", "<p>Hi</p>")

    assert exc_info.value.provider == "sendgrid"


@pytest.mark.asyncio
async def test_sendgrid_requires_api_key(no_credentials):
    calls = []
    client = SendGridEmailClient(transport=httpx.MockTransport(lambda request: calls.append(request)))

    with pytest.raises(ConfigurationError):
        await client.send_email("max@example.com", "hello@sunsetdental.com", None, "Hi", "<p>Hi</p>")
    assert calls == []
