"""
Outbound clients: SMS, email and AI providers
"""

from .ai_providers import (
    DEFAULT_MODELS,
    AIProviderBackend,
    AnthropicBackend,
    GoogleBackend,
    OpenAIBackend,
    ProviderRegistry,
    XAIBackend,
)
from .email_transport import EmailTransport, SendGridEmailClient
from .sms_transport import SmsTransport, TwilioSmsClient

__all__ = [
    "DEFAULT_MODELS",
    "AIProviderBackend",
    "AnthropicBackend",
    "GoogleBackend",
    "OpenAIBackend",
    "ProviderRegistry",
    "XAIBackend",
    "EmailTransport",
    "SendGridEmailClient",
    "SmsTransport",
    "TwilioSmsClient",
]
