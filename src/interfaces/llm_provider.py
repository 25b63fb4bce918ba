"""Abstract base class for the AI content-analysis capability.

Every model backend (OpenAI, Anthropic, a local Ollama server) sits behind
this contract so the extraction pool never talks to a vendor SDK
directly.  Input is text or an image plus a prompt; output is freeform
text that is *expected* to contain a JSON object.  Callers must not
assume the reply is JSON-only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider, OllamaLLMProvider
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for model backends used by the extraction pool.

    Providers must support plain text completion; vision (image analysis)
    is optional and declared via :meth:`supports_vision`.

    Error mapping every implementation follows:

    * rate-limit responses -> :class:`~src.utils.errors.RateLimitError`
    * 5xx / connection failures -> :class:`~src.utils.errors.ProviderUnavailableError`
    * client-side timeouts -> :class:`~src.utils.errors.ModelTimeoutError`
    * anything else -> :class:`~src.utils.errors.LLMError`
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.1,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The instruction message describing the JSON shape to return.
        user_prompt:
            The page text to analyse.
        temperature:
            Sampling temperature; extraction wants this low.
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's raw text response.
        """

    @abstractmethod
    async def vision_extract(self, image_bytes: bytes, prompt: str) -> str:
        """Analyse an image using the model's vision capability.

        Raises
        ------
        NotImplementedError
            If the provider does not support vision (check
            :meth:`supports_vision` first).
        """

    @abstractmethod
    def supports_vision(self) -> bool:
        """Return ``True`` if this provider can process image inputs."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier such as ``"anthropic"`` or ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials are present, without a network call."""

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid."""
