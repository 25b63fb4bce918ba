"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
Supports both text completion and vision analysis.  When a custom
``openai_base_url`` is configured (TogetherAI, Groq, Fireworks, ...), the
client points at that URL instead of the default OpenAI endpoint.

SDK exceptions are translated by :func:`map_openai_error` into the
extraction error taxonomy so the worker pool can tell transient failures
(rate limit, 5xx, timeout) from fatal ones.  The Ollama adapter reuses it.
"""

from __future__ import annotations

import base64

import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.utils.errors import (
    ExtractionError,
    LLMError,
    ModelTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)


def _detect_media_type(image_bytes: bytes) -> str:
    """Detect the MIME type of an image from its magic bytes.

    PNG starts with 89 50 4E 47, WEBP with RIFF....WEBP, GIF with GIF8,
    JPEG with FF D8.
    """
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    if image_bytes[:4] == b"GIF8":
        return "image/gif"
    return "image/jpeg"


def map_openai_error(exc: openai.APIError, provider_name: str) -> ExtractionError:
    """Translate an ``openai`` SDK exception into an extraction error."""
    # APITimeoutError subclasses APIConnectionError, so test it first.
    if isinstance(exc, openai.APITimeoutError):
        return ModelTimeoutError(
            message=f"{provider_name} request timed out", provider_name=provider_name
        )
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(
            message=f"{provider_name} rate limit: {exc}", provider_name=provider_name
        )
    if isinstance(exc, openai.APIConnectionError):
        return ProviderUnavailableError(
            message=f"{provider_name} unreachable: {exc}", provider_name=provider_name
        )
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        return ProviderUnavailableError(
            message=f"{provider_name} server error {exc.status_code}",
            provider_name=provider_name,
        )
    return LLMError(message=f"{provider_name} API error: {exc}", provider_name=provider_name)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible API.

    Uses ``gpt-4o`` for vision and ``gpt-4o-mini`` for text by default;
    both can be overridden via settings.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        # Client timeout sits just under the per-unit bound so the worker
        # sees a ModelTimeoutError rather than a cancelled task.
        client_kwargs: dict = {
            "api_key": self._api_key,
            "timeout": openai.Timeout(settings.llm_timeout_seconds, connect=10.0),
            "max_retries": 0,
        }
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._text_model = settings.openai_text_model or "gpt-4o-mini"
        self._vision_model = settings.openai_vision_model or "gpt-4o"
        self._has_vision = bool(settings.openai_vision_model) or not settings.openai_base_url
        self._provider_label = (
            "openai-compatible" if settings.openai_base_url else "openai"
        )

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        try:
            response = await self._client.chat.completions.create(
                model=self._text_model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise map_openai_error(exc, self._provider_label) from exc

        content = response.choices[0].message.content
        if content is None:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._text_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        if not self._has_vision:
            raise NotImplementedError(
                f"{self._provider_label} is configured without a vision model"
            )
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        media_type = _detect_media_type(image_bytes)
        try:
            response = await self._client.chat.completions.create(
                model=self._vision_model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {
                                "type": "image_url",
                                "image_url": {"url": f"data:{media_type};base64,{b64}"},
                            },
                        ],
                    }
                ],
                temperature=0.1,
                max_tokens=4000,
            )
        except openai.APIError as exc:
            raise map_openai_error(exc, self._provider_label) from exc

        content = response.choices[0].message.content
        if content is None:
            raise LLMError(
                message=f"{self._provider_label} vision returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_vision_extract",
            model=self._vision_model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    def supports_vision(self) -> bool:
        return self._has_vision

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """List models to verify the API key without incurring inference cost."""
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        return self._provider_label
