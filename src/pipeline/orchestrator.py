"""Central orchestrator for the schedule parsing pipeline.

Coordinates discovery, extraction, aggregation and staging for one seed
URL, reporting progress through the injected :class:`ProgressTracker`.

ARCHITECTURE NOTE:
    The orchestrator owns no I/O of its own.  Every collaborator (discovery
    service, extraction pool, aggregator, staging store) is injected, so a
    test can swap any of them for a mock.

    A run has TWO entry points so the API can answer before the work is
    done:
        - start()  -> creates the staging record (PENDING) and returns its id
        - run()    -> does the work in the background and writes the
                      aggregated analysis to that record exactly once

    Status flow on the staging record:
        PENDING -> PARSING -> PENDING_REVIEW     (any number of shows, even 0)
                          \\-> FAILED             (seed unreachable / fatal error)

    Partial extraction failures never fail the run; failed units are empty
    records that the aggregator skips.  A cancelled run aggregates whatever
    finished before the cancel.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from src.config.loader import PipelineConfig
from src.interfaces.staging_store import IStagingStore
from src.models.aggregation import AggregatedResult
from src.models.content import DiscoveryOptions
from src.models.extraction import CandidateRecord, UnitStatus
from src.models.pipeline import RunPhase
from src.models.schedule import ParsedSchedule, ParseStatus
from src.pipeline.progress_tracker import ProgressTracker
from src.services.aggregator import Aggregator
from src.services.discovery_service import DiscoveryReport, DiscoveryService
from src.services.extraction_service import ExtractionPool
from src.utils.errors import (
    DiscoveryError,
    InvalidStatusTransitionError,
    KaraokeScoutError,
)
from src.utils.logging import bind_run_context, clear_run_context, get_logger

_EXTRACTION_START = 15.0
_EXTRACTION_END = 85.0


class ScheduleParsingPipeline:
    """Runs discovery -> extraction -> aggregation -> staging for a seed URL."""

    def __init__(
        self,
        discovery: DiscoveryService,
        extraction_pool: ExtractionPool,
        aggregator: Aggregator,
        staging: IStagingStore,
        progress_tracker: ProgressTracker,
        config: PipelineConfig | None = None,
    ) -> None:
        self._discovery = discovery
        self._pool = extraction_pool
        self._aggregator = aggregator
        self._staging = staging
        self._progress = progress_tracker
        self._config = config or PipelineConfig()
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def default_options(self) -> DiscoveryOptions:
        return DiscoveryOptions(
            max_depth=self._config.max_depth,
            include_subdomains=self._config.include_subdomains,
            max_units=self._config.max_units,
        )

    async def start(self, url: str, options: DiscoveryOptions | None = None) -> str:
        """Create the PENDING staging record for a new run and return its id."""
        options = options or self.default_options()
        schedule_id = await self._staging.create(
            url, raw_data={"options": options.model_dump(mode="json")}
        )
        self._cancel_events[schedule_id] = asyncio.Event()
        await self._progress.update(schedule_id, RunPhase.QUEUED, 0.0, "Queued")
        return schedule_id

    async def parse(self, url: str, options: DiscoveryOptions | None = None) -> ParsedSchedule:
        """Start and run to completion; used by the CLI."""
        options = options or self.default_options()
        schedule_id = await self.start(url, options)
        return await self.run(schedule_id, options)

    async def run(
        self, schedule_id: str, options: DiscoveryOptions | None = None
    ) -> ParsedSchedule:
        """Execute the run for an existing staging record.

        A PENDING record moves through PARSING to PENDING_REVIEW or FAILED.
        A PENDING_REVIEW record is re-parsed in place: on success its
        analysis is overwritten, on failure the previous analysis is kept
        and the failure is appended to its parsing logs.

        Never raises for run-level failures; the outcome is on the
        returned record.
        """
        record = await self._staging.get(schedule_id)
        options = options or self._stored_options(record)
        in_place = record.status is ParseStatus.PENDING_REVIEW
        cancel_event = self._cancel_events.setdefault(schedule_id, asyncio.Event())
        bind_run_context(schedule_id, record.url)

        try:
            if not in_place:
                await self._staging.update_status(schedule_id, ParseStatus.PARSING)
            self._logger.info("run_started", reparse=in_place, max_units=options.max_units)

            await self._progress.update(
                schedule_id, RunPhase.DISCOVERY, 5.0, f"Discovering content at {record.url}"
            )
            try:
                report = await self._discovery.collect(record.url, options)
            except DiscoveryError as exc:
                return await self._fail(
                    schedule_id, in_place, f"Discovery failed ({exc.detail}): {exc.message}"
                )

            records = await self._extract(schedule_id, report, cancel_event)
            cancelled = cancel_event.is_set()

            await self._progress.update(
                schedule_id, RunPhase.AGGREGATION, 90.0, "Merging results"
            )
            aggregated = self._aggregator.aggregate(records)

            await self._progress.update(
                schedule_id, RunPhase.STAGING, 95.0, "Saving for review"
            )
            stored = await self._store(schedule_id, report, records, aggregated, cancelled)

            final_phase = RunPhase.CANCELLED if cancelled else RunPhase.DONE
            await self._progress.update(
                schedule_id,
                final_phase,
                100.0,
                f"{len(aggregated.shows)} shows found, awaiting review",
            )
            self._logger.info(
                "run_complete",
                status=stored.status.value,
                shows=len(aggregated.shows),
                vendors=len(aggregated.vendors),
                djs=len(aggregated.djs),
                cancelled=cancelled,
            )
            return stored
        except InvalidStatusTransitionError as exc:
            # A reviewer decided the record while this run was in flight.
            self._logger.warning("run_result_discarded", error=exc.message)
            await self._progress.update(schedule_id, RunPhase.FAILED, 100.0, exc.message)
            return await self._staging.get(schedule_id)
        except KaraokeScoutError as exc:
            return await self._fail(schedule_id, in_place, str(exc))
        except Exception as exc:
            self._logger.exception("run_crashed", error=str(exc))
            return await self._fail(schedule_id, in_place, f"Unexpected error: {exc}")
        finally:
            self._cancel_events.pop(schedule_id, None)
            clear_run_context()

    def cancel(self, schedule_id: str) -> bool:
        """Signal a running run to stop; returns False if it is not running."""
        event = self._cancel_events.get(schedule_id)
        if event is None:
            return False
        event.set()
        self._logger.info("run_cancel_requested", schedule_id=schedule_id)
        return True

    def is_running(self, schedule_id: str) -> bool:
        return schedule_id in self._cancel_events

    async def reparse(self, schedule_id: str) -> str:
        """Prepare a re-parse and return the id :meth:`run` should be called with.

        PENDING_REVIEW records are re-parsed in place (same id).  Terminal
        records keep their history; a new record is created for the same
        URL and options.

        Raises
        ------
        InvalidStatusTransitionError
            If the record is still queued or being parsed.
        """
        record = await self._staging.get(schedule_id)
        if record.status in (ParseStatus.PENDING, ParseStatus.PARSING):
            raise InvalidStatusTransitionError(
                message=f"Parsed schedule {schedule_id} is still {record.status.value}"
            )
        if record.status is ParseStatus.PENDING_REVIEW:
            self._cancel_events[schedule_id] = asyncio.Event()
            await self._progress.update(schedule_id, RunPhase.QUEUED, 0.0, "Queued for re-parse")
            return schedule_id

        new_id = await self._staging.create(
            record.url,
            raw_data={
                "options": self._stored_options(record).model_dump(mode="json"),
                "reparseOf": schedule_id,
            },
        )
        self._cancel_events[new_id] = asyncio.Event()
        await self._progress.update(new_id, RunPhase.QUEUED, 0.0, "Queued")
        self._logger.info("reparse_created", schedule_id=new_id, reparse_of=schedule_id)
        return new_id

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _stored_options(self, record: ParsedSchedule) -> DiscoveryOptions:
        stored = record.raw_data.get("options")
        if isinstance(stored, dict):
            return DiscoveryOptions.model_validate(stored)
        return self.default_options()

    async def _extract(
        self,
        schedule_id: str,
        report: DiscoveryReport,
        cancel_event: asyncio.Event,
    ) -> list[CandidateRecord]:
        total = len(report.units)
        await self._progress.update(
            schedule_id,
            RunPhase.EXTRACTION,
            _EXTRACTION_START,
            f"Analysing {total} content units",
            units_total=total,
            units_done=0,
        )
        done = 0

        async def _on_unit_done(record: CandidateRecord) -> None:
            nonlocal done
            done += 1
            span = _EXTRACTION_END - _EXTRACTION_START
            await self._progress.update(
                schedule_id,
                RunPhase.EXTRACTION,
                _EXTRACTION_START + span * done / max(total, 1),
                f"Analysed {done}/{total}: {record.unit_url}",
                units_done=done,
            )

        return await self._pool.extract_all(
            report.units,
            concurrency_limit=self._config.max_concurrent_calls,
            cancel_event=cancel_event,
            on_unit_done=_on_unit_done,
        )

    async def _store(
        self,
        schedule_id: str,
        report: DiscoveryReport,
        records: list[CandidateRecord],
        aggregated: AggregatedResult,
        cancelled: bool,
    ) -> ParsedSchedule:
        raw_data: dict[str, Any] = report.as_raw_data()
        raw_data["unitStatuses"] = {r.unit_url: r.status.value for r in records}
        raw_data["cancelled"] = cancelled
        return await self._staging.store_analysis(
            schedule_id,
            aggregated,
            raw_data=raw_data,
            parsing_logs=self._parsing_logs(report, records),
        )

    @staticmethod
    def _parsing_logs(report: DiscoveryReport, records: list[CandidateRecord]) -> list[str]:
        lines = [
            f"discovered {len(report.units)} units from {report.seed_url} ({report.mode.value})"
        ]
        if report.truncated:
            lines.append(f"discovery truncated at {len(report.units)} units")
        for record in records:
            line = f"[{record.status.value}] {record.unit_url}: {len(record.shows)} shows"
            if record.status is not UnitStatus.OK and record.error:
                line += f" ({record.error})"
            lines.append(line)
        return lines

    async def _fail(self, schedule_id: str, in_place: bool, error: str) -> ParsedSchedule:
        self._logger.error("run_failed", error=error, reparse=in_place)
        await self._progress.update(schedule_id, RunPhase.FAILED, 100.0, error)
        if in_place:
            try:
                await self._staging.append_logs(schedule_id, [f"re-parse failed: {error}"])
            except InvalidStatusTransitionError as exc:
                # Reviewed while the re-parse was in flight.
                self._logger.warning("run_fail_log_rejected", error=exc.message)
            return await self._staging.get(schedule_id)
        try:
            return await self._staging.update_status(
                schedule_id, ParseStatus.FAILED, error=error
            )
        except InvalidStatusTransitionError as exc:
            self._logger.warning("run_fail_status_rejected", error=exc.message)
            return await self._staging.get(schedule_id)
