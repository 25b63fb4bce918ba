"""Discovery: expand a seed URL into the content units worth analysing.

# --- DESIGN -----------------------------------------------------------
#
# Two modes, chosen per run (AUTO picks by host):
#
#   1. Website mode: fetch the seed page, collect same-site links
#      (optionally including subdomains) and emit each as an HTML unit.
#      The seed page itself is always unit 0.  Links are followed one
#      hop by default; ``max_depth`` > 1 fetches the linked pages to look
#      for further links.  Karaoke-looking paths (karaoke, venue, event,
#      schedule, ...) are emitted first so truncation keeps the useful
#      pages.
#
#   2. Social mode: fetch the group's media page and harvest every CDN
#      image URL, including ones only present as JSON-escaped strings in
#      inline scripts.  Each URL is classified; thumbnails are upgraded
#      and keep the original as ``fallback_url``.
#
# The seed fetch is retried on transient errors; if it still fails the
# whole discovery fails with a DiscoveryError whose ``detail`` says why
# (dns / timeout / http_403 / ...).  Failures fetching deeper pages only
# cost their links.
#
# Output is an async generator capped at ``max_units``; exceeding the
# cap truncates rather than fails.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import asyncio
import html as html_lib
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urldefrag, urljoin, urlparse

import structlog
from bs4 import BeautifulSoup

from src.interfaces.content_fetcher import IContentFetcher
from src.models.content import (
    ContentKind,
    ContentUnit,
    DiscoveryMode,
    DiscoveryOptions,
    FetchedContent,
)
from src.services.url_classifier import classify, size_hint_for
from src.utils.concurrency import throttled_gather
from src.utils.errors import DiscoveryError, FetchError
from src.utils.retry import retry_async

logger = structlog.get_logger(logger_name=__name__)

_SOCIAL_HOSTS = ("facebook.com", "fb.com")

_SKIPPED_SCHEMES = ("mailto:", "tel:", "sms:", "javascript:", "data:")
_SKIPPED_EXTENSIONS = re.compile(
    r"\.(?:css|js|json|xml|rss|png|jpe?g|gif|svg|webp|ico|bmp|pdf|zip|gz|"
    r"mp3|mp4|mov|avi|woff2?|ttf|eot)$",
    re.IGNORECASE,
)
_SKIPPED_PATHS = re.compile(
    r"/(?:wp-admin|wp-login|wp-json|admin|login|logout|signin|signup|register|"
    r"cart|checkout|account|my-account|feed)(?:/|$|\.php)",
    re.IGNORECASE,
)
_PRIORITY_KEYWORDS = (
    "karaoke",
    "schedule",
    "calendar",
    "venue",
    "location",
    "event",
    "show",
)

_ESCAPED_URL_RE = re.compile(r"https?:(?:\\?/){2}[^\s\"'<>()]+")
_MEDIA_EXTENSIONS = re.compile(r"\.(?:jpe?g|png|webp)$", re.IGNORECASE)


@dataclass
class DiscoveryReport:
    """Result of :meth:`DiscoveryService.collect`."""

    seed_url: str
    mode: DiscoveryMode
    units: list[ContentUnit] = field(default_factory=list)
    truncated: bool = False
    seed_title: str = ""
    discovered_at: datetime = field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    def as_raw_data(self) -> dict:
        return {
            "url": self.seed_url,
            "mode": self.mode.value,
            "title": self.seed_title,
            "unitCount": len(self.units),
            "truncated": self.truncated,
            "units": [u.url for u in self.units],
            "discoveredAt": self.discovered_at.isoformat(),
        }


def resolve_mode(seed_url: str, mode: DiscoveryMode) -> DiscoveryMode:
    if mode is not DiscoveryMode.AUTO:
        return mode
    host = (urlparse(seed_url).hostname or "").lower()
    if any(host == h or host.endswith("." + h) for h in _SOCIAL_HOSTS):
        return DiscoveryMode.SOCIAL
    return DiscoveryMode.WEBSITE


def _bare_host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def is_same_site(url: str, base_host: str, include_subdomains: bool) -> bool:
    host = _bare_host(url)
    if not host:
        return False
    if host == base_host:
        return True
    return include_subdomains and host.endswith("." + base_host)


def _is_crawlable(url: str) -> bool:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    if _SKIPPED_EXTENSIONS.search(parsed.path):
        return False
    return not _SKIPPED_PATHS.search(parsed.path)


def _priority(url: str) -> int:
    parsed = urlparse(url)
    lowered = f"{parsed.path}?{parsed.query}".lower()
    return 0 if any(k in lowered for k in _PRIORITY_KEYWORDS) else 1


def extract_links(
    html_text: str,
    page_url: str,
    base_host: str,
    include_subdomains: bool,
) -> list[str]:
    """Return crawlable same-site links from a page, karaoke-looking ones first.

    Relative links are resolved against *page_url*; fragments are dropped
    and duplicates removed, preserving first-seen order within each
    priority band.
    """
    soup = BeautifulSoup(html_text, "html.parser")
    seen: set[str] = set()
    links: list[str] = []
    for a_tag in soup.find_all("a", href=True):
        href = a_tag["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
            continue
        absolute, _fragment = urldefrag(urljoin(page_url, href))
        if absolute in seen:
            continue
        seen.add(absolute)
        if not is_same_site(absolute, base_host, include_subdomains):
            continue
        if not _is_crawlable(absolute):
            continue
        links.append(absolute)
    # sorted() is stable, so document order survives within a band.
    return sorted(links, key=_priority)


def _unescape_embedded(url: str) -> str:
    url = url.replace("\\/", "/")
    url = url.replace("\\u0025", "%").replace("\\u0026", "&").replace("\\u003d", "=")
    url = html_lib.unescape(url)
    return url.rstrip("\\")


def _is_cdn_image(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    if host.startswith("static.") or not (
        "fbcdn.net" in host or host.startswith("scontent") or "cdninstagram.com" in host
    ):
        return False
    return bool(_MEDIA_EXTENSIONS.search(parsed.path))


def extract_media_urls(html_text: str, page_url: str) -> list[str]:
    """Collect CDN image URLs from tags and from escaped strings in scripts."""
    soup = BeautifulSoup(html_text, "html.parser")
    candidates: list[str] = []
    for img in soup.find_all("img"):
        for attr in ("src", "data-src"):
            if img.get(attr):
                candidates.append(img[attr])
        if img.get("srcset"):
            candidates.extend(part.strip().split(" ")[0] for part in img["srcset"].split(","))
    for meta in soup.find_all("meta", attrs={"property": "og:image"}):
        if meta.get("content"):
            candidates.append(meta["content"])
    candidates.extend(_unescape_embedded(m) for m in _ESCAPED_URL_RE.findall(html_text))

    seen: set[str] = set()
    media: list[str] = []
    for raw in candidates:
        url = urljoin(page_url, raw.strip())
        if url in seen or not _is_cdn_image(url):
            continue
        seen.add(url)
        media.append(url)
    return media


def _page_title(html_text: str) -> str:
    soup = BeautifulSoup(html_text, "html.parser")
    title = soup.find("title")
    return title.get_text(strip=True) if title else ""


class DiscoveryService:
    """Turns a seed URL into content units.

    Parameters
    ----------
    fetcher:
        Content fetcher used for the seed page (and deeper pages).
    fetch_max_attempts:
        Attempts for the seed fetch on transient errors.
    retry_base_delay:
        Base backoff delay between seed fetch attempts.
    max_parallel_seeds:
        Seeds processed concurrently by :meth:`collect_many`.
    """

    def __init__(
        self,
        fetcher: IContentFetcher,
        fetch_max_attempts: int = 3,
        retry_base_delay: float = 1.0,
        max_parallel_seeds: int = 2,
    ) -> None:
        self._fetcher = fetcher
        self._fetch_max_attempts = fetch_max_attempts
        self._retry_base_delay = retry_base_delay
        self._max_parallel_seeds = max_parallel_seeds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def discover(
        self, seed_url: str, options: DiscoveryOptions | None = None
    ) -> AsyncIterator[ContentUnit]:
        """Yield content units for *seed_url*, at most ``options.max_units``.

        Raises
        ------
        DiscoveryError
            If the seed cannot be fetched.
        """
        options = options or DiscoveryOptions()
        report = DiscoveryReport(seed_url=seed_url, mode=resolve_mode(seed_url, options.mode))
        async for unit in self._capped(seed_url, options, report):
            yield unit

    async def collect(
        self, seed_url: str, options: DiscoveryOptions | None = None
    ) -> DiscoveryReport:
        """Run discovery to completion and return the units with run metadata."""
        options = options or DiscoveryOptions()
        report = DiscoveryReport(seed_url=seed_url, mode=resolve_mode(seed_url, options.mode))
        async for unit in self._capped(seed_url, options, report):
            report.units.append(unit)
        logger.info(
            "discovery_complete",
            seed_url=seed_url,
            mode=report.mode.value,
            units=len(report.units),
            truncated=report.truncated,
        )
        return report

    async def collect_many(
        self, seed_urls: list[str], options: DiscoveryOptions | None = None
    ) -> list[DiscoveryReport | BaseException]:
        """Discover several independent seeds concurrently.

        Each seed succeeds or fails on its own; failures are returned in
        place as the raised exception.
        """
        semaphore = asyncio.Semaphore(self._max_parallel_seeds)
        return await throttled_gather(
            [self.collect(seed, options) for seed in seed_urls],
            semaphore=semaphore,
            return_exceptions=True,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _capped(
        self, seed_url: str, options: DiscoveryOptions, report: DiscoveryReport
    ) -> AsyncIterator[ContentUnit]:
        if report.mode is DiscoveryMode.SOCIAL:
            source = self._discover_social(seed_url, report)
        else:
            source = self._discover_website(seed_url, options, report)

        count = 0
        async for unit in source:
            if count >= options.max_units:
                report.truncated = True
                logger.info(
                    "discovery_truncated", seed_url=seed_url, max_units=options.max_units
                )
                break
            yield unit.model_copy(update={"index": count})
            count += 1
        await source.aclose()

    async def _fetch_seed(self, seed_url: str) -> FetchedContent:
        try:
            return await retry_async(
                lambda: self._fetcher.fetch(seed_url),
                max_attempts=self._fetch_max_attempts,
                base_delay=self._retry_base_delay,
                operation="seed_fetch",
            )
        except FetchError as exc:
            logger.error("seed_fetch_failed", seed_url=seed_url, detail=exc.kind, error=str(exc))
            raise DiscoveryError(
                message=f"Could not fetch seed {seed_url}: {exc.message}",
                provider_name=exc.provider_name,
                detail=exc.kind,
            ) from exc

    async def _discover_website(
        self, seed_url: str, options: DiscoveryOptions, report: DiscoveryReport
    ) -> AsyncIterator[ContentUnit]:
        seed = await self._fetch_seed(seed_url)
        if seed.is_image:
            yield ContentUnit(url=seed_url, kind=ContentKind.IMAGE)
            return

        seed_html = seed.text()
        report.seed_title = _page_title(seed_html)
        base_host = _bare_host(seed_url)
        seen: set[str] = {urldefrag(seed_url)[0], urldefrag(seed.url)[0]}
        yield ContentUnit(url=seed_url, kind=ContentKind.HTML)

        if options.max_depth < 1:
            return

        frontier: list[tuple[str, str]] = [(seed.url, seed_html)]
        for depth in range(1, options.max_depth + 1):
            next_level: list[str] = []
            for page_url, page_html in frontier:
                for link in extract_links(
                    page_html, page_url, base_host, options.include_subdomains
                ):
                    if link in seen:
                        continue
                    seen.add(link)
                    next_level.append(link)
                    yield ContentUnit(url=link, kind=ContentKind.HTML)

            if depth == options.max_depth:
                break
            frontier = []
            for link in next_level:
                try:
                    page = await self._fetcher.fetch(link)
                except FetchError as exc:
                    logger.warning("discovery_page_skipped", url=link, detail=exc.kind)
                    continue
                if page.is_html:
                    frontier.append((page.url, page.text()))

    async def _discover_social(
        self, seed_url: str, report: DiscoveryReport
    ) -> AsyncIterator[ContentUnit]:
        seed = await self._fetch_seed(seed_url)
        page_html = seed.text()
        report.seed_title = _page_title(page_html)

        emitted: set[str] = set()
        thumbnails = 0
        for media_url in extract_media_urls(page_html, seed.url):
            classified = classify(media_url)
            if classified.upgraded_url in emitted:
                continue
            emitted.add(classified.upgraded_url)
            if classified.is_thumbnail:
                thumbnails += 1
            yield ContentUnit(
                url=classified.upgraded_url,
                kind=ContentKind.IMAGE,
                size_hint=size_hint_for(classified),
                fallback_url=media_url if classified.is_thumbnail else None,
            )
        logger.debug(
            "social_media_harvested", seed_url=seed_url, images=len(emitted), upgraded=thumbnails
        )
