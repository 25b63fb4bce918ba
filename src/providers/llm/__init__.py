"""LLM provider adapters.

Three concrete implementations of ILLMProvider (src/interfaces/llm_provider.py):
    - AnthropicLLMProvider -- Claude (vision + text)
    - OpenAILLMProvider    -- gpt-4o / gpt-4o-mini, or any OpenAI-compatible API
    - OllamaLLMProvider    -- local models via an Ollama server

main.py picks the first configured provider in that order.
"""

from src.providers.llm.anthropic_provider import AnthropicLLMProvider
from src.providers.llm.ollama_provider import OllamaLLMProvider
from src.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OllamaLLMProvider", "OpenAILLMProvider"]
