"""Content fetcher adapters (IContentFetcher)."""

from src.providers.fetcher.httpx_fetcher import HttpxContentFetcher

__all__ = ["HttpxContentFetcher"]
