"""Abstract base class for raw content retrieval.

A fetcher performs exactly one HTTP attempt per call and returns the
decompressed body.  Retrying is the caller's decision (see
:func:`src.utils.retry.retry_async`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.content import FetchedContent


# Concrete implementation: HttpxContentFetcher (src/providers/fetcher/)
class IContentFetcher(ABC):
    """Contract for fetching pages and images."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchedContent:
        """Retrieve *url* and return its decompressed bytes and content type.

        Raises
        ------
        src.utils.errors.NetworkError
            DNS, connection or TLS failure.
        src.utils.errors.FetchTimeoutError
            The request exceeded the configured timeout and was aborted.
        src.utils.errors.HttpStatusError
            The server answered with a non-2xx status.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for log context."""

    @abstractmethod
    async def close(self) -> None:
        """Release pooled connections owned by the fetcher."""
