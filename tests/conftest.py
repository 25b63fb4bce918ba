"""Shared pytest fixtures for the karaoke-scout test suite."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.interfaces.content_fetcher import IContentFetcher
from src.interfaces.llm_provider import ILLMProvider
from src.models.content import ContentKind, ContentUnit, FetchedContent
from src.models.extraction import CandidateRecord
from src.providers.entity_store.sqlite_entity_store import SQLiteEntityStore
from src.providers.staging.sqlite_staging_store import SQLiteStagingStore
from src.utils.errors import NetworkError

# ---------------------------------------------------------------------------
# Content helpers
# ---------------------------------------------------------------------------

SCHEDULE_PAGE_TEXT = (
    "Karaoke every Friday night at Joe's Bar, 8pm until midnight with KJ Mike. "
    "Hosted by Star Karaoke."
)

# Smallest valid JPEG header; enough for media-type sniffing.
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"


def html_page(body: str, title: str = "Karaoke Nights") -> FetchedContent:
    """Wrap *body* in a minimal HTML document."""
    return FetchedContent(
        url="https://example.com/",
        content=f"<html><head><title>{title}</title></head><body>{body}</body></html>".encode(),
        content_type="text/html; charset=utf-8",
    )


def image_content(url: str) -> FetchedContent:
    return FetchedContent(url=url, content=JPEG_BYTES, content_type="image/jpeg")


def make_unit(
    url: str,
    kind: ContentKind = ContentKind.HTML,
    index: int = 0,
    fallback_url: str | None = None,
) -> ContentUnit:
    return ContentUnit(url=url, kind=kind, index=index, fallback_url=fallback_url)


def make_record(
    unit_url: str,
    unit_index: int = 0,
    vendor: dict[str, Any] | None = None,
    djs: list[dict[str, Any]] | None = None,
    shows: list[dict[str, Any]] | None = None,
) -> CandidateRecord:
    """Build a candidate record from camelCase wire-format dicts."""
    return CandidateRecord.model_validate(
        {
            "unitUrl": unit_url,
            "unitIndex": unit_index,
            "vendor": vendor,
            "djs": djs or [],
            "shows": shows or [],
        }
    )


def model_reply(
    vendor: dict[str, Any] | None = None,
    djs: list[dict[str, Any]] | None = None,
    shows: list[dict[str, Any]] | None = None,
    preamble: str = "Here is the schedule data:",
) -> str:
    """A chatty model reply wrapping the JSON payload in a code fence."""
    payload = {"vendor": vendor, "djs": djs or [], "shows": shows or []}
    return f"{preamble}\n```json\n{json.dumps(payload)}\n```"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFetcher(IContentFetcher):
    """In-memory fetcher: each URL maps to content or to an exception to raise.

    A list value is consumed one item per call (for retry scenarios).
    Unknown URLs raise a DNS-style NetworkError.
    """

    def __init__(self, responses: dict[str, Any] | None = None, delay: float = 0.0) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[str] = []
        self.delay = delay

    async def fetch(self, url: str) -> FetchedContent:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(url)
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if response is None:
            raise NetworkError(
                message=f"DNS lookup failed for {url}",
                provider_name="fake",
                url=url,
                dns_failure=True,
            )
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, FetchedContent) and response.url != url:
            return response.model_copy(update={"url": url})
        return response

    def get_provider_name(self) -> str:
        return "fake"

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_llm_provider() -> MagicMock:
    """Mock LLM provider with vision support and an empty default reply."""
    provider = MagicMock(spec=ILLMProvider)
    provider.complete = AsyncMock(return_value=model_reply())
    provider.vision_extract = AsyncMock(return_value=model_reply())
    provider.supports_vision.return_value = True
    provider.is_available.return_value = True
    provider.get_provider_name.return_value = "mock-llm"
    return provider


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
async def staging_store(tmp_path: Path) -> SQLiteStagingStore:
    store = SQLiteStagingStore(tmp_path / "staging.db")
    await store.initialize()
    return store


@pytest.fixture
async def entity_store(tmp_path: Path) -> SQLiteEntityStore:
    store = SQLiteEntityStore(tmp_path / "entities.db")
    await store.initialize()
    return store
