"""Ollama LLM provider adapter.

Talks to a local Ollama server through its OpenAI-compatible ``/v1`` API,
so it reuses the ``openai`` client and :func:`map_openai_error`.  Useful
for running the pipeline offline; local models are noticeably weaker at
reading schedule images than the hosted ones.
"""

from __future__ import annotations

import base64

import httpx
import openai
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.providers.llm.openai_provider import _detect_media_type, map_openai_error
from src.utils.errors import LLMError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaLLMProvider(ILLMProvider):
    """LLM provider backed by a local Ollama server."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._configured = bool(settings.ollama_base_url)
        self._base_url = settings.ollama_base_url or _DEFAULT_BASE_URL
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url.rstrip('/')}/v1",
            api_key="ollama",
            timeout=openai.Timeout(settings.llm_timeout_seconds, connect=5.0),
            max_retries=0,
        )
        self._text_model = settings.ollama_text_model
        self._vision_model = settings.ollama_vision_model

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
            raise map_openai_error(exc, "ollama") from exc

        content = response.choices[0].message.content
        if content is None:
            raise LLMError(message="Ollama returned empty response", provider_name="ollama")
        logger.info("ollama_completion", model=self._text_model)
        return content

    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
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
                max_tokens=4000,
            )
        except openai.APIError as exc:
            raise map_openai_error(exc, "ollama") from exc

        content = response.choices[0].message.content
        if content is None:
            raise LLMError(message="Ollama vision returned empty response", provider_name="ollama")
        logger.info("ollama_vision_extract", model=self._vision_model)
        return content

    def supports_vision(self) -> bool:
        return bool(self._vision_model)

    def is_available(self) -> bool:
        return self._configured

    async def validate_credentials(self) -> bool:
        """Check the server is up by listing installed models (``/api/tags``)."""
        if not self.is_available():
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self._base_url.rstrip('/')}/api/tags")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    def get_provider_name(self) -> str:
        return "ollama"
