"""Unit tests for the httpx content fetcher, using httpx.MockTransport."""

from __future__ import annotations

import gzip

import httpx
import pytest

from src.providers.fetcher.httpx_fetcher import HttpxContentFetcher
from src.utils.errors import (
    FetchError,
    FetchTimeoutError,
    HttpStatusError,
    NetworkError,
    is_retryable,
)

_PAGE = b"<html><body>Karaoke Fridays at Joe's Bar</body></html>"


def _fetcher(handler, **kwargs) -> tuple[HttpxContentFetcher, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxContentFetcher(http_client=client, **kwargs), client


class TestHttpxContentFetcher:
    @pytest.mark.asyncio
    async def test_sends_browser_headers(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, content=_PAGE, headers={"content-type": "text/html"})

        fetcher, client = _fetcher(handler)
        async with client:
            await fetcher.fetch("https://example.com/")

        assert "Mozilla/5.0" in seen["user-agent"]
        assert "text/html" in seen["accept"]
        assert "gzip" in seen["accept-encoding"]

    @pytest.mark.asyncio
    async def test_gzip_body_is_decoded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=gzip.compress(_PAGE),
                headers={"content-type": "text/html; charset=utf-8", "content-encoding": "gzip"},
            )

        fetcher, client = _fetcher(handler)
        async with client:
            result = await fetcher.fetch("https://example.com/")

        assert result.content == _PAGE
        assert result.is_html
        assert "Joe's Bar" in result.text()

    @pytest.mark.asyncio
    async def test_image_content_type(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\xff\xd8\xff", headers={"content-type": "image/jpeg"})

        fetcher, client = _fetcher(handler)
        async with client:
            result = await fetcher.fetch("https://scontent.fbcdn.net/a.jpg")

        assert result.is_image
        assert result.media_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        fetcher, client = _fetcher(handler)
        async with client:
            with pytest.raises(HttpStatusError) as exc_info:
                await fetcher.fetch("https://example.com/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.kind == "http_404"
        assert is_retryable(exc_info.value) is False

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        fetcher, client = _fetcher(handler)
        async with client:
            with pytest.raises(HttpStatusError) as exc_info:
                await fetcher.fetch("https://example.com/")

        assert is_retryable(exc_info.value) is True

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        fetcher, client = _fetcher(handler)
        async with client:
            with pytest.raises(FetchTimeoutError) as exc_info:
                await fetcher.fetch("https://example.com/")

        assert exc_info.value.kind == "timeout"
        assert exc_info.value.url == "https://example.com/"

    @pytest.mark.asyncio
    async def test_dns_failure_is_not_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        fetcher, client = _fetcher(handler)
        async with client:
            with pytest.raises(NetworkError) as exc_info:
                await fetcher.fetch("https://no-such-host.invalid/")

        assert exc_info.value.kind == "dns"
        assert is_retryable(exc_info.value) is False

    @pytest.mark.asyncio
    async def test_connection_refused_is_retryable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        fetcher, client = _fetcher(handler)
        async with client:
            with pytest.raises(NetworkError) as exc_info:
                await fetcher.fetch("https://example.com/")

        assert exc_info.value.kind == "network"
        assert is_retryable(exc_info.value) is True

    @pytest.mark.asyncio
    async def test_oversized_body_rejected(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"x" * 100, headers={"content-type": "text/html"})

        fetcher, client = _fetcher(handler, max_bytes=10)
        async with client:
            with pytest.raises(FetchError):
                await fetcher.fetch("https://example.com/")

    @pytest.mark.asyncio
    async def test_close_leaves_injected_client_open(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=_PAGE, headers={"content-type": "text/html"})

        fetcher, client = _fetcher(handler)
        async with client:
            await fetcher.close()
            assert client.is_closed is False
