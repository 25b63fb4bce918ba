"""Content fetcher backed by ``httpx``.

One call, one HTTP attempt.  The whole request (connect, headers, body)
is bounded by ``timeout`` with ``asyncio.wait_for`` so a server that
trickles bytes cannot hold a worker forever; httpx's own per-phase
timeouts only bound each read.

Response bodies are decoded by httpx according to ``Content-Encoding``
(gzip and deflate natively, ``br`` through the ``brotli`` package pulled
in by the ``httpx[brotli]`` extra), so callers always receive plain
bytes.
"""

from __future__ import annotations

import asyncio
import re

import httpx
import structlog

from src.interfaces.content_fetcher import IContentFetcher
from src.models.content import FetchedContent
from src.utils.errors import FetchError, FetchTimeoutError, HttpStatusError, NetworkError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_BYTES = 50 * 1024 * 1024

# Sites and CDNs reject default client identifiers, so present as Chrome.
_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate, br",
}

_DNS_FAILURE_RE = re.compile(
    r"name or service not known|nodename nor servname|getaddrinfo failed|"
    r"name resolution|no address associated|\[Errno -[235]\]",
    re.IGNORECASE,
)


def _is_dns_failure(exc: BaseException) -> bool:
    current: BaseException | None = exc
    while current is not None:
        if _DNS_FAILURE_RE.search(str(current)):
            return True
        current = current.__cause__ or current.__context__
    return False


class HttpxContentFetcher(IContentFetcher):
    """Fetch pages and images with a browser-like client.

    Parameters
    ----------
    http_client:
        Optional pre-built client (tests pass one wired to
        ``httpx.MockTransport``).  When omitted the fetcher builds and owns
        its own client and closes it in :meth:`close`.
    timeout:
        Total seconds allowed for one fetch.
    max_bytes:
        Bodies larger than this are abandoned mid-stream.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        max_bytes: int = _DEFAULT_MAX_BYTES,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )
        self._timeout = timeout
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> FetchedContent:
        try:
            return await asyncio.wait_for(self._fetch_once(url), timeout=self._timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.warning("fetch_timeout", url=url, timeout=self._timeout)
            raise FetchTimeoutError(
                message=f"Timed out after {self._timeout:.0f}s fetching {url}",
                provider_name=self.get_provider_name(),
                url=url,
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("fetch_http_error", url=url, status=status)
            raise HttpStatusError(
                status_code=status,
                message=f"HTTP {status} for {url}",
                provider_name=self.get_provider_name(),
                url=url,
            ) from exc
        except httpx.HTTPError as exc:
            dns = _is_dns_failure(exc)
            logger.warning("fetch_network_error", url=url, dns_failure=dns, error=str(exc))
            raise NetworkError(
                message=f"{'DNS lookup' if dns else 'Network error'} failed for {url}: {exc}",
                provider_name=self.get_provider_name(),
                url=url,
                dns_failure=dns,
            ) from exc

    async def _fetch_once(self, url: str) -> FetchedContent:
        async with self._client.stream("GET", url, headers=_DEFAULT_HEADERS) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self._max_bytes:
                raise FetchError(
                    message=f"Response of {declared} bytes exceeds limit for {url}",
                    provider_name=self.get_provider_name(),
                    url=url,
                )
            chunks: list[bytes] = []
            received = 0
            # aiter_bytes yields content already decoded per Content-Encoding.
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > self._max_bytes:
                    raise FetchError(
                        message=f"Response exceeds {self._max_bytes} bytes for {url}",
                        provider_name=self.get_provider_name(),
                        url=url,
                    )
                chunks.append(chunk)

            content = FetchedContent(
                url=str(response.url),
                content=b"".join(chunks),
                content_type=response.headers.get("content-type", ""),
                status_code=response.status_code,
            )

        logger.debug(
            "content_fetched",
            url=url,
            status=content.status_code,
            content_type=content.media_type,
            size=len(content.content),
        )
        return content

    def get_provider_name(self) -> str:
        return "httpx"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
