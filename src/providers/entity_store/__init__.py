"""Committed-entity persistence adapters (IEntityStore)."""

from src.providers.entity_store.sqlite_entity_store import SQLiteEntityStore

__all__ = ["SQLiteEntityStore"]
