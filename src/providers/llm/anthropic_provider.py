"""Anthropic (Claude) LLM provider adapter.

Wraps the ``anthropic`` async client to implement :class:`ILLMProvider`.
One model handles both text pages and schedule images.  SDK exceptions
are mapped onto the extraction error taxonomy the same way the OpenAI
adapter does.
"""

from __future__ import annotations

import base64

import anthropic
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.providers.llm.openai_provider import _detect_media_type
from src.utils.errors import (
    ExtractionError,
    LLMError,
    ModelTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = structlog.get_logger(logger_name=__name__)


def _map_anthropic_error(exc: anthropic.APIError) -> ExtractionError:
    if isinstance(exc, anthropic.APITimeoutError):
        return ModelTimeoutError(message="Anthropic request timed out", provider_name="anthropic")
    if isinstance(exc, anthropic.RateLimitError):
        return RateLimitError(message=f"Anthropic rate limit: {exc}", provider_name="anthropic")
    if isinstance(exc, anthropic.APIConnectionError):
        return ProviderUnavailableError(
            message=f"Anthropic unreachable: {exc}", provider_name="anthropic"
        )
    # 529 "overloaded" lands here too.
    if isinstance(exc, anthropic.APIStatusError) and exc.status_code >= 500:
        return ProviderUnavailableError(
            message=f"Anthropic server error {exc.status_code}", provider_name="anthropic"
        )
    return LLMError(message=f"Anthropic API error: {exc}", provider_name="anthropic")


class AnthropicLLMProvider(ILLMProvider):
    """LLM provider backed by Anthropic's Messages API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.anthropic_api_key
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        self._model = settings.anthropic_model

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion.

        The system prompt is a top-level parameter in the Messages API,
        not a message in the list.
        """
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
            )
        except anthropic.APIError as exc:
            raise _map_anthropic_error(exc) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "anthropic_completion",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return "\n".join(text_blocks)

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Analyse a schedule image; the image block goes before the prompt."""
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        media_type = _detect_media_type(image_bytes)
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=4000,
                temperature=0.1,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image",
                                "source": {
                                    "type": "base64",
                                    "media_type": media_type,
                                    "data": b64,
                                },
                            },
                            {"type": "text", "text": prompt},
                        ],
                    }
                ],
            )
        except anthropic.APIError as exc:
            raise _map_anthropic_error(exc) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise LLMError(
                message="Anthropic vision returned no text content",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "anthropic_vision_extract",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return "\n".join(text_blocks)

    def supports_vision(self) -> bool:
        return True

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        if not self.is_available():
            return False
        try:
            await self._client.messages.create(
                model=self._model,
                max_tokens=10,
                messages=[{"role": "user", "content": "hi"}],
            )
            return True
        except anthropic.APIError:
            return False

    def get_provider_name(self) -> str:
        return "anthropic"
