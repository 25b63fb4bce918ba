"""Public interface definitions for all external collaborators.

The pipeline reaches every external system through the abstract base
classes in this package; concrete adapters in ``src/providers/`` are
constructed in ``src/main.py`` and injected into services.

CONCRETE PROVIDER MAP:
    Interface          ->  Concrete implementations (in src/providers/)
    -------------------------------------------------------------------
    ILLMProvider       ->  OpenAILLMProvider, AnthropicLLMProvider,
                           OllamaLLMProvider
    IContentFetcher    ->  HttpxContentFetcher
    IStagingStore      ->  SQLiteStagingStore
    IEntityStore       ->  SQLiteEntityStore
"""

from src.interfaces.content_fetcher import IContentFetcher
from src.interfaces.entity_store import IEntityStore
from src.interfaces.llm_provider import ILLMProvider
from src.interfaces.staging_store import IStagingStore

__all__ = [
    "IContentFetcher",
    "IEntityStore",
    "ILLMProvider",
    "IStagingStore",
]
