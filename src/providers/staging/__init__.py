"""Parsed-schedule staging store adapters (IStagingStore)."""

from src.providers.staging.sqlite_staging_store import SQLiteStagingStore

__all__ = ["SQLiteStagingStore"]
