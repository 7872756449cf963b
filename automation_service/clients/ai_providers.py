"""
AI provider backends with a uniform result shape.

Each backend handles provider-specific concerns (client creation, request
shape, response parsing and token counting) and returns an AIResult.
Failures of any kind are wrapped in ProviderError.
"""

import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from anthropic import AsyncAnthropic
from google import genai
from openai import AsyncOpenAI

from ..config import get_automation_settings
from ..errors import ConfigurationError, ProviderError
from ..models import AIProvider, AIResult

logger = logging.getLogger(__name__)


DEFAULT_MODELS: Dict[AIProvider, str] = {
    AIProvider.ANTHROPIC: "claude-sonnet-4-20250514",
    AIProvider.OPENAI: "gpt-4o-mini",
    AIProvider.GOOGLE: "gemini-2.0-flash",
    AIProvider.XAI: "grok-3-mini",
}


@runtime_checkable
class AIProviderBackend(Protocol):
    """Protocol for AI provider implementations."""

    provider: AIProvider

    async def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int) -> AIResult: ...


class AnthropicBackend:
    """Anthropic Claude via the Messages API."""

    provider = AIProvider.ANTHROPIC

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or get_automation_settings().anthropic_api_key
        self._client: Optional[AsyncAnthropic] = None

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("anthropic API key is not configured")
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int) -> AIResult:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except Exception as e:
            raise ProviderError(self.provider.value, str(e)) from e

        text = "".join(block.text for block in response.content if hasattr(block, "text"))
        return AIResult(
            text=text,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=model,
            provider=self.provider,
        )


class OpenAIBackend:
    """OpenAI Chat Completions. Also serves OpenAI-compatible endpoints."""

    provider = AIProvider.OPENAI

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key or get_automation_settings().openai_api_key
        self.base_url = base_url
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(f"{self.provider.value} API key is not configured")
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int) -> AIResult:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except Exception as e:
            raise ProviderError(self.provider.value, str(e)) from e

        usage = response.usage
        return AIResult(
            text=(response.choices[0].message.content or "") if response.choices else "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=model,
            provider=self.provider,
        )


class XAIBackend(OpenAIBackend):
    """xAI Grok through its OpenAI-compatible endpoint."""

    provider = AIProvider.XAI

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        settings = get_automation_settings()
        super().__init__(
            api_key=api_key or settings.xai_api_key,
            base_url=base_url or settings.xai_base_url,
        )


class GoogleBackend:
    """Google Gemini via google-genai."""

    provider = AIProvider.GOOGLE

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or get_automation_settings().google_api_key
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError("google API key is not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate(self, system_prompt: str, user_prompt: str, model: str, max_tokens: int) -> AIResult:
        client = self._get_client()
        config = genai.types.GenerateContentConfig(
            system_instruction=system_prompt,
            max_output_tokens=max_tokens,
        )
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=user_prompt,
                config=config,
            )
        except Exception as e:
            raise ProviderError(self.provider.value, str(e)) from e

        usage = getattr(response, "usage_metadata", None)
        return AIResult(
            text=response.text or "",
            input_tokens=(getattr(usage, "prompt_token_count", 0) or 0) if usage else 0,
            output_tokens=(getattr(usage, "candidates_token_count", 0) or 0) if usage else 0,
            model=model,
            provider=self.provider,
        )


class ProviderRegistry:
    """
    Closed map from provider to backend, injected into the AI orchestrator.
    """

    def __init__(self, backends: Optional[Dict[AIProvider, AIProviderBackend]] = None):
        self._backends: Dict[AIProvider, AIProviderBackend] = dict(backends or {})

    @classmethod
    def from_settings(cls) -> "ProviderRegistry":
        """Registry with every supported provider, keys read from settings."""
        return cls({
            AIProvider.ANTHROPIC: AnthropicBackend(),
            AIProvider.OPENAI: OpenAIBackend(),
            AIProvider.GOOGLE: GoogleBackend(),
            AIProvider.XAI: XAIBackend(),
        })

    def register(self, backend: AIProviderBackend) -> None:
        self._backends[backend.provider] = backend

    def get(self, provider: AIProvider) -> AIProviderBackend:
        backend = self._backends.get(provider)
        if backend is None:
            raise ConfigurationError(f"No backend registered for AI provider '{provider.value}'")
        return backend

    @staticmethod
    def default_model(provider: AIProvider) -> str:
        return DEFAULT_MODELS[provider]
