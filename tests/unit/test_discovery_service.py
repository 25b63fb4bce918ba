"""Unit tests for seed-URL discovery (website and social modes)."""

from __future__ import annotations

import pytest

from conftest import FakeFetcher, html_page
from src.models.content import ContentKind, DiscoveryMode, DiscoveryOptions, SizeHint
from src.services.discovery_service import (
    DiscoveryReport,
    DiscoveryService,
    extract_links,
    resolve_mode,
)
from src.utils.errors import DiscoveryError, FetchTimeoutError, HttpStatusError

_SEED = "https://starkaraoke.com/"

_SEED_BODY = """
<h1>Star Karaoke</h1>
<a href="/about">About</a>
<a href="/karaoke-schedule">Schedule</a>
<a href="https://www.starkaraoke.com/venues#list">Venues</a>
<a href="mailto:info@starkaraoke.com">Mail us</a>
<a href="https://facebook.com/starkaraoke">Facebook</a>
<a href="/style.css">css</a>
<a href="/wp-admin/">admin</a>
<a href="#top">top</a>
<a href="/about">About again</a>
<a href="https://events.starkaraoke.com/">Events</a>
"""

_SOCIAL_SEED = "https://www.facebook.com/groups/123/media"

_SOCIAL_BODY = """
<img src="https://scontent.xx.fbcdn.net/v/t39/s130x130/1_n.jpg?oh=a&oe=b">
<img src="https://scontent.xx.fbcdn.net/v/t39/1_n.jpg?oh=a&oe=b">
<img src="https://static.xx.fbcdn.net/rsrc.php/icon.png">
<img src="https://example.com/logo.png">
<script>
{"media":{"uri":"https:\\/\\/scontent.xx.fbcdn.net\\/v\\/t39\\/2_n.jpg?stp=dst-jpg_p320x320&oh=c&oe=d"}}
</script>
"""


def _service(fetcher: FakeFetcher) -> DiscoveryService:
    return DiscoveryService(fetcher=fetcher, fetch_max_attempts=3, retry_base_delay=0.0)


class TestResolveMode:
    @pytest.mark.parametrize(
        "url", ["https://www.facebook.com/groups/1/media", "https://m.facebook.com/groups/1"]
    )
    def test_auto_detects_social(self, url: str) -> None:
        assert resolve_mode(url, DiscoveryMode.AUTO) is DiscoveryMode.SOCIAL

    def test_auto_defaults_to_website(self) -> None:
        assert resolve_mode(_SEED, DiscoveryMode.AUTO) is DiscoveryMode.WEBSITE

    def test_explicit_mode_wins(self) -> None:
        assert resolve_mode(_SOCIAL_SEED, DiscoveryMode.WEBSITE) is DiscoveryMode.WEBSITE


class TestExtractLinks:
    def test_same_site_links_karaoke_paths_first(self) -> None:
        links = extract_links(f"<html>{_SEED_BODY}</html>", _SEED, "starkaraoke.com", False)
        assert links == [
            "https://starkaraoke.com/karaoke-schedule",
            "https://www.starkaraoke.com/venues",
            "https://starkaraoke.com/about",
        ]

    def test_subdomains_included_on_request(self) -> None:
        links = extract_links(f"<html>{_SEED_BODY}</html>", _SEED, "starkaraoke.com", True)
        assert "https://events.starkaraoke.com/" in links


class TestWebsiteDiscovery:
    @pytest.mark.asyncio
    async def test_seed_then_linked_pages(self) -> None:
        fetcher = FakeFetcher({_SEED: html_page(_SEED_BODY, title="Star Karaoke")})

        report = await _service(fetcher).collect(_SEED, DiscoveryOptions())

        assert report.mode is DiscoveryMode.WEBSITE
        assert report.seed_title == "Star Karaoke"
        assert [u.url for u in report.units] == [
            _SEED,
            "https://starkaraoke.com/karaoke-schedule",
            "https://www.starkaraoke.com/venues",
            "https://starkaraoke.com/about",
        ]
        assert [u.index for u in report.units] == [0, 1, 2, 3]
        assert all(u.kind is ContentKind.HTML for u in report.units)
        assert report.truncated is False

    @pytest.mark.asyncio
    async def test_max_units_truncates(self) -> None:
        fetcher = FakeFetcher({_SEED: html_page(_SEED_BODY)})

        report = await _service(fetcher).collect(_SEED, DiscoveryOptions(max_units=2))

        assert len(report.units) == 2
        assert report.truncated is True

    @pytest.mark.asyncio
    async def test_depth_zero_is_seed_only(self) -> None:
        fetcher = FakeFetcher({_SEED: html_page(_SEED_BODY)})

        report = await _service(fetcher).collect(_SEED, DiscoveryOptions(max_depth=0))

        assert [u.url for u in report.units] == [_SEED]

    @pytest.mark.asyncio
    async def test_depth_two_follows_linked_pages(self) -> None:
        fetcher = FakeFetcher(
            {
                _SEED: html_page('<a href="/karaoke-schedule">Schedule</a><a href="/gone">x</a>'),
                "https://starkaraoke.com/karaoke-schedule": html_page(
                    '<a href="/venues/joes-bar">Joe\'s Bar</a>'
                ),
            }
        )

        report = await _service(fetcher).collect(_SEED, DiscoveryOptions(max_depth=2))

        assert [u.url for u in report.units] == [
            _SEED,
            "https://starkaraoke.com/karaoke-schedule",
            "https://starkaraoke.com/gone",
            "https://starkaraoke.com/venues/joes-bar",
        ]

    @pytest.mark.asyncio
    async def test_transient_seed_failure_is_retried(self) -> None:
        fetcher = FakeFetcher({_SEED: [FetchTimeoutError(url=_SEED), html_page("<p>hi</p>")]})

        report = await _service(fetcher).collect(_SEED, DiscoveryOptions(max_depth=0))

        assert len(report.units) == 1
        assert fetcher.calls == [_SEED, _SEED]

    @pytest.mark.asyncio
    async def test_unreachable_seed_raises_with_detail(self) -> None:
        fetcher = FakeFetcher()

        with pytest.raises(DiscoveryError) as exc_info:
            await _service(fetcher).collect("https://no-such-host.invalid/")

        assert exc_info.value.detail == "dns"
        assert fetcher.calls == ["https://no-such-host.invalid/"]

    @pytest.mark.asyncio
    async def test_forbidden_seed_is_not_retried(self) -> None:
        fetcher = FakeFetcher({_SEED: HttpStatusError(status_code=403, url=_SEED)})

        with pytest.raises(DiscoveryError) as exc_info:
            await _service(fetcher).collect(_SEED)

        assert exc_info.value.detail == "http_403"
        assert len(fetcher.calls) == 1

    @pytest.mark.asyncio
    async def test_discover_streams_units(self) -> None:
        fetcher = FakeFetcher({_SEED: html_page(_SEED_BODY)})

        urls = [u.url async for u in _service(fetcher).discover(_SEED, DiscoveryOptions())]

        assert urls[0] == _SEED
        assert len(urls) == 4


class TestSocialDiscovery:
    @pytest.mark.asyncio
    async def test_harvests_and_upgrades_cdn_images(self) -> None:
        fetcher = FakeFetcher({_SOCIAL_SEED: html_page(_SOCIAL_BODY)})

        report = await _service(fetcher).collect(_SOCIAL_SEED)

        assert report.mode is DiscoveryMode.SOCIAL
        assert [u.url for u in report.units] == [
            "https://scontent.xx.fbcdn.net/v/t39/1_n.jpg?oh=a&oe=b",
            "https://scontent.xx.fbcdn.net/v/t39/2_n.jpg?oh=c&oe=d",
        ]
        first, second = report.units
        assert first.kind is ContentKind.IMAGE
        assert first.size_hint is SizeHint.FULL_SIZE
        assert first.fallback_url == "https://scontent.xx.fbcdn.net/v/t39/s130x130/1_n.jpg?oh=a&oe=b"
        assert second.fallback_url == (
            "https://scontent.xx.fbcdn.net/v/t39/2_n.jpg?stp=dst-jpg_p320x320&oh=c&oe=d"
        )

    @pytest.mark.asyncio
    async def test_social_cap(self) -> None:
        fetcher = FakeFetcher({_SOCIAL_SEED: html_page(_SOCIAL_BODY)})

        report = await _service(fetcher).collect(_SOCIAL_SEED, DiscoveryOptions(max_units=1))

        assert len(report.units) == 1
        assert report.truncated is True


class TestCollectMany:
    @pytest.mark.asyncio
    async def test_seeds_fail_independently(self) -> None:
        fetcher = FakeFetcher({_SEED: html_page("<p>ok</p>")})

        results = await _service(fetcher).collect_many(
            [_SEED, "https://no-such-host.invalid/"], DiscoveryOptions(max_depth=0)
        )

        assert isinstance(results[0], DiscoveryReport)
        assert isinstance(results[1], DiscoveryError)


class TestDiscoveryReport:
    def test_raw_data_shape(self) -> None:
        report = DiscoveryReport(seed_url=_SEED, mode=DiscoveryMode.WEBSITE, truncated=True)
        raw = report.as_raw_data()
        assert raw["url"] == _SEED
        assert raw["mode"] == "website"
        assert raw["unitCount"] == 0
        assert raw["truncated"] is True
        assert "discoveredAt" in raw
