"""Integration tests for the full parse pipeline.

Real discovery, extraction pool, aggregator and SQLite stores; only the
network (FakeFetcher) and the model (mock provider) are faked.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import SCHEDULE_PAGE_TEXT, FakeFetcher, html_page, model_reply
from src.config.loader import PipelineConfig
from src.models.content import FetchedContent
from src.models.pipeline import RunPhase, RunProgress
from src.models.schedule import ParseStatus, ScheduleOutcome
from src.pipeline.orchestrator import ScheduleParsingPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.providers.staging.sqlite_staging_store import SQLiteStagingStore
from src.services.aggregator import Aggregator
from src.services.discovery_service import DiscoveryService
from src.services.extraction_service import ExtractionPool
from src.utils.errors import InvalidStatusTransitionError

_SEED = "https://starkaraoke.com/"
_SCHEDULE = "https://starkaraoke.com/karaoke-schedule"
_CONTACT = "https://starkaraoke.com/contact"

_SEED_BODY = (
    "<p>Star Karaoke brings professional karaoke hosts to bars across Austin.</p>"
    '<a href="/karaoke-schedule">Schedule</a><a href="/contact">Contact</a>'
)

_SEED_REPLY = model_reply(
    vendor={"name": "Star Karaoke", "website": "starkaraoke.com", "confidence": 0.8}
)
_SCHEDULE_REPLY = model_reply(
    vendor={"name": "Star Karaoke", "confidence": 0.9},
    djs=[{"name": "KJ Mike", "confidence": 0.9}],
    shows=[
        {
            "venue": "Joe's Bar",
            "city": "Austin",
            "state": "TX",
            "day": "Fridays",
            "time": "8pm-12am",
            "djName": "KJ Mike",
            "confidence": 0.9,
        }
    ],
)


def _site() -> FakeFetcher:
    return FakeFetcher(
        {
            _SEED: html_page(_SEED_BODY, title="Star Karaoke"),
            _SCHEDULE: html_page(f"<p>{SCHEDULE_PAGE_TEXT}</p>"),
        }
    )


async def _reply_by_page(system_prompt: str, user_prompt: str, **_: object) -> str:
    if _SCHEDULE in user_prompt:
        return _SCHEDULE_REPLY
    return _SEED_REPLY


def _pipeline(
    llm: MagicMock,
    fetcher: FakeFetcher,
    staging: SQLiteStagingStore,
    tracker: ProgressTracker | None = None,
) -> ScheduleParsingPipeline:
    config = PipelineConfig(
        fetch_max_attempts=2,
        call_stagger_seconds=0.0,
        unit_timeout_seconds=5.0,
        retry_base_delay_seconds=0.0,
    )
    return ScheduleParsingPipeline(
        discovery=DiscoveryService(fetcher=fetcher, fetch_max_attempts=2, retry_base_delay=0.0),
        extraction_pool=ExtractionPool(
            llm=llm,
            fetcher=fetcher,
            call_stagger=0.0,
            unit_timeout=5.0,
            retry_base_delay=0.0,
            fetch_max_attempts=2,
        ),
        aggregator=Aggregator(),
        staging=staging,
        progress_tracker=tracker or ProgressTracker(),
        config=config,
    )


class TestParsePipeline:
    @pytest.mark.asyncio
    async def test_site_parsed_into_pending_review(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        mock_llm_provider.complete = AsyncMock(side_effect=_reply_by_page)
        tracker = ProgressTracker()
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store, tracker)

        record = await pipeline.parse(_SEED)

        assert record.status is ParseStatus.PENDING_REVIEW
        assert record.outcome is ScheduleOutcome.SHOWS_FOUND
        assert record.error is None

        analysis = record.ai_analysis
        assert analysis is not None
        assert [v.name for v in analysis.vendors] == ["Star Karaoke"]
        assert [d.name for d in analysis.djs] == ["KJ Mike"]
        show = analysis.shows[0]
        assert (show.venue, show.day, show.start_time, show.end_time) == (
            "Joe's Bar",
            "friday",
            "20:00",
            "00:00",
        )
        assert show.source == _SCHEDULE
        assert show.vendor_id == analysis.vendors[0].id
        assert show.dj_id == analysis.djs[0].id

        status = tracker.get_status(record.id)
        assert status.phase is RunPhase.DONE
        assert status.units_total == 3
        assert status.units_done == 3

    @pytest.mark.asyncio
    async def test_failed_unit_does_not_fail_the_run(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        mock_llm_provider.complete = AsyncMock(side_effect=_reply_by_page)

        record = await _pipeline(mock_llm_provider, _site(), staging_store).parse(_SEED)

        assert record.status is ParseStatus.PENDING_REVIEW
        assert record.raw_data["unitStatuses"] == {
            _SEED: "ok",
            _SCHEDULE: "ok",
            _CONTACT: "failed",
        }
        assert any(line.startswith(f"[failed] {_CONTACT}") for line in record.parsing_logs)
        assert record.raw_data["options"]["max_units"] == 50

    @pytest.mark.asyncio
    async def test_no_shows_is_reviewable_not_failed(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        record = await _pipeline(mock_llm_provider, _site(), staging_store).parse(_SEED)

        assert record.status is ParseStatus.PENDING_REVIEW
        assert record.outcome is ScheduleOutcome.NO_SHOWS_FOUND
        assert record.error is None

    @pytest.mark.asyncio
    async def test_unreachable_seed_fails_with_cause(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        tracker = ProgressTracker()
        pipeline = _pipeline(mock_llm_provider, FakeFetcher(), staging_store, tracker)

        record = await pipeline.parse("https://no-such-host.invalid/")

        assert record.status is ParseStatus.FAILED
        assert record.outcome is ScheduleOutcome.FAILED
        assert (record.error or "").startswith("Discovery failed (dns)")
        assert tracker.get_status(record.id).phase is RunPhase.FAILED
        mock_llm_provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancelled_run_stages_partial_result(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        tracker = ProgressTracker()
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store, tracker)
        schedule_id = await pipeline.start(_SEED)

        def cancel_on_extraction(snapshot: RunProgress) -> None:
            if snapshot.phase is RunPhase.EXTRACTION:
                pipeline.cancel(schedule_id)

        tracker.register_listener(schedule_id, cancel_on_extraction)

        record = await pipeline.run(schedule_id)

        assert record.status is ParseStatus.PENDING_REVIEW
        assert record.raw_data["cancelled"] is True
        assert set(record.raw_data["unitStatuses"].values()) == {"cancelled"}
        assert tracker.get_status(schedule_id).phase is RunPhase.CANCELLED
        assert not pipeline.is_running(schedule_id)
        mock_llm_provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_unknown_run(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store)
        assert pipeline.cancel("not-running") is False


class TestReparse:
    @pytest.mark.asyncio
    async def test_pending_review_reparsed_in_place(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store)
        first = await pipeline.parse(_SEED)
        assert first.outcome is ScheduleOutcome.NO_SHOWS_FOUND

        mock_llm_provider.complete = AsyncMock(side_effect=_reply_by_page)
        run_id = await pipeline.reparse(first.id)
        record = await pipeline.run(run_id)

        assert run_id == first.id
        assert record.status is ParseStatus.PENDING_REVIEW
        assert record.outcome is ScheduleOutcome.SHOWS_FOUND

    @pytest.mark.asyncio
    async def test_failed_in_place_reparse_keeps_previous_analysis(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        fetcher = _site()
        mock_llm_provider.complete = AsyncMock(side_effect=_reply_by_page)
        pipeline = _pipeline(mock_llm_provider, fetcher, staging_store)
        first = await pipeline.parse(_SEED)

        del fetcher.responses[_SEED]
        run_id = await pipeline.reparse(first.id)
        record = await pipeline.run(run_id)

        assert record.status is ParseStatus.PENDING_REVIEW
        assert record.ai_analysis == first.ai_analysis
        assert record.parsing_logs[-1].startswith("re-parse failed: Discovery failed (dns)")

    @pytest.mark.asyncio
    async def test_terminal_record_reparsed_into_new_record(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        pipeline = _pipeline(mock_llm_provider, FakeFetcher(), staging_store)
        failed = await pipeline.parse(_SEED)
        assert failed.status is ParseStatus.FAILED

        pipeline = _pipeline(mock_llm_provider, _site(), staging_store)
        run_id = await pipeline.reparse(failed.id)
        record = await pipeline.run(run_id)

        assert run_id != failed.id
        assert record.raw_data["reparseOf"] == failed.id
        assert record.status is ParseStatus.PENDING_REVIEW
        assert (await staging_store.get(failed.id)).status is ParseStatus.FAILED

    @pytest.mark.asyncio
    async def test_running_record_cannot_be_reparsed(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store)
        schedule_id = await pipeline.start(_SEED)

        with pytest.raises(InvalidStatusTransitionError):
            await pipeline.reparse(schedule_id)

    @pytest.mark.asyncio
    async def test_concurrent_runs_do_not_interfere(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        mock_llm_provider.complete = AsyncMock(side_effect=_reply_by_page)
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store)

        first, second = await asyncio.gather(pipeline.parse(_SEED), pipeline.parse(_SEED))

        assert first.id != second.id
        assert first.ai_analysis == second.ai_analysis

    @pytest.mark.asyncio
    async def test_failed_reparse_leaves_approved_record_untouched(
        self, mock_llm_provider: MagicMock, staging_store: SQLiteStagingStore
    ) -> None:
        mock_llm_provider.complete = AsyncMock(side_effect=_reply_by_page)
        pipeline = _pipeline(mock_llm_provider, _site(), staging_store)
        first = await pipeline.parse(_SEED)

        class ApprovingFetcher(FakeFetcher):
            async def fetch(self, url: str) -> FetchedContent:
                if not self.calls:
                    await staging_store.update_status(
                        first.id, ParseStatus.APPROVED, reviewed_by="alex"
                    )
                return await super().fetch(url)

        pipeline = _pipeline(mock_llm_provider, ApprovingFetcher(), staging_store)
        run_id = await pipeline.reparse(first.id)
        record = await pipeline.run(run_id)

        assert record.status is ParseStatus.APPROVED
        assert record.parsing_logs == first.parsing_logs
        assert not any("re-parse failed" in line for line in record.parsing_logs)
