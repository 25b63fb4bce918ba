"""SQLite-backed parsed-schedule staging store.

# --- ARCHITECTURE -----------------------------------------------------
#
#   - aiosqlite for async I/O, one short-lived connection per call
#   - WAL mode so the review API can read while a run writes
#   - parameterized queries throughout
#   - idempotent initialize() with CREATE TABLE IF NOT EXISTS
#
# Status changes are compare-and-set: the UPDATE is guarded by
# ``WHERE status = <status we validated against>`` so two reviewers
# racing on one record cannot both win.  The loser re-reads the row and
# gets the appropriate transition error.
#
# aiAnalysis, rawData, parsingLogs and committed ids are stored as JSON
# text columns.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.staging_store import IStagingStore
from src.models.aggregation import AggregatedResult
from src.models.schedule import (
    CommittedEntities,
    ParsedSchedule,
    ParseStatus,
    TERMINAL_STATUSES,
    can_transition,
)
from src.utils.errors import (
    AlreadyTerminalError,
    InvalidStatusTransitionError,
    ScheduleNotFoundError,
)

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/staging.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS parsed_schedules (
    id                TEXT PRIMARY KEY,
    url               TEXT NOT NULL,
    status            TEXT NOT NULL DEFAULT 'pending',
    raw_data          TEXT NOT NULL DEFAULT '{}',
    ai_analysis       TEXT,
    error             TEXT,
    parsing_logs      TEXT NOT NULL DEFAULT '[]',
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL,
    reviewed_at       TEXT,
    reviewed_by       TEXT,
    rejection_reason  TEXT,
    review_comments   TEXT,
    committed         TEXT
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_schedules_status ON parsed_schedules(status);",
    "CREATE INDEX IF NOT EXISTS idx_schedules_created ON parsed_schedules(created_at);",
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()  # noqa: UP017


def _row_to_schedule(row: aiosqlite.Row) -> ParsedSchedule:
    return ParsedSchedule(
        id=row["id"],
        url=row["url"],
        status=ParseStatus(row["status"]),
        raw_data=json.loads(row["raw_data"] or "{}"),
        ai_analysis=(
            AggregatedResult.model_validate_json(row["ai_analysis"])
            if row["ai_analysis"]
            else None
        ),
        error=row["error"],
        parsing_logs=json.loads(row["parsing_logs"] or "[]"),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        reviewed_at=datetime.fromisoformat(row["reviewed_at"]) if row["reviewed_at"] else None,
        reviewed_by=row["reviewed_by"],
        rejection_reason=row["rejection_reason"],
        review_comments=row["review_comments"],
        committed=(
            CommittedEntities.model_validate_json(row["committed"]) if row["committed"] else None
        ),
    )


def _transition_error(schedule_id: str, current: ParseStatus, target: ParseStatus) -> Exception:
    if current in (ParseStatus.APPROVED, ParseStatus.REJECTED, ParseStatus.FAILED):
        return AlreadyTerminalError(
            message=f"Parsed schedule {schedule_id} is already {current.value}",
            provider_name="sqlite",
        )
    return InvalidStatusTransitionError(
        message=(
            f"Parsed schedule {schedule_id} cannot move from "
            f"{current.value} to {target.value}"
        ),
        provider_name="sqlite",
    )


class SQLiteStagingStore(IStagingStore):
    """SQLite implementation of the staging store."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("staging_db_initialized", path=str(self._db_path))

    async def create(
        self,
        url: str,
        aggregated: AggregatedResult | None = None,
        raw_data: dict[str, Any] | None = None,
    ) -> str:
        schedule_id = str(uuid.uuid4())
        now = _now()
        status = ParseStatus.PENDING_REVIEW if aggregated is not None else ParseStatus.PENDING
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "INSERT INTO parsed_schedules "
                "(id, url, status, raw_data, ai_analysis, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    schedule_id,
                    url,
                    status.value,
                    json.dumps(raw_data or {}),
                    aggregated.model_dump_json() if aggregated is not None else None,
                    now,
                    now,
                ),
            )
            await db.commit()
        logger.info("parsed_schedule_created", schedule_id=schedule_id, url=url, status=status.value)
        return schedule_id

    async def get(self, schedule_id: str) -> ParsedSchedule:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM parsed_schedules WHERE id = ?", (schedule_id,)
            )
            row = await cursor.fetchone()
        if row is None:
            raise ScheduleNotFoundError(schedule_id, provider_name="sqlite")
        return _row_to_schedule(row)

    async def list_by_status(
        self, status: ParseStatus, limit: int = 100
    ) -> list[ParsedSchedule]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM parsed_schedules WHERE status = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (status.value, limit),
            )
            rows = await cursor.fetchall()
        return [_row_to_schedule(r) for r in rows]

    async def update_status(
        self,
        schedule_id: str,
        status: ParseStatus,
        *,
        error: str | None = None,
        reviewed_by: str | None = None,
        rejection_reason: str | None = None,
        review_comments: str | None = None,
        committed: CommittedEntities | None = None,
    ) -> ParsedSchedule:
        current = await self.get(schedule_id)
        if not can_transition(current.status, status):
            raise _transition_error(schedule_id, current.status, status)

        now = _now()
        reviewed_at = (
            now if status in (ParseStatus.APPROVED, ParseStatus.REJECTED) else None
        )
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "UPDATE parsed_schedules SET status = ?, updated_at = ?, "
                "error = COALESCE(?, error), "
                "reviewed_at = COALESCE(?, reviewed_at), "
                "reviewed_by = COALESCE(?, reviewed_by), "
                "rejection_reason = COALESCE(?, rejection_reason), "
                "review_comments = COALESCE(?, review_comments), "
                "committed = COALESCE(?, committed) "
                "WHERE id = ? AND status = ?",
                (
                    status.value,
                    now,
                    error,
                    reviewed_at,
                    reviewed_by,
                    rejection_reason,
                    review_comments,
                    committed.model_dump_json() if committed is not None else None,
                    schedule_id,
                    current.status.value,
                ),
            )
            await db.commit()
            updated = cursor.rowcount > 0

        if not updated:
            # Lost a race; report against whatever state won.
            latest = await self.get(schedule_id)
            raise _transition_error(schedule_id, latest.status, status)

        logger.info(
            "parsed_schedule_status_changed",
            schedule_id=schedule_id,
            from_status=current.status.value,
            to_status=status.value,
        )
        return await self.get(schedule_id)

    async def store_analysis(
        self,
        schedule_id: str,
        aggregated: AggregatedResult,
        raw_data: dict[str, Any] | None = None,
        parsing_logs: list[str] | None = None,
    ) -> ParsedSchedule:
        current = await self.get(schedule_id)
        if not can_transition(current.status, ParseStatus.PENDING_REVIEW):
            raise _transition_error(schedule_id, current.status, ParseStatus.PENDING_REVIEW)

        merged_raw = {**current.raw_data, **(raw_data or {})}
        logs = [*current.parsing_logs, *(parsing_logs or [])]
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "UPDATE parsed_schedules SET status = ?, ai_analysis = ?, raw_data = ?, "
                "parsing_logs = ?, error = NULL, updated_at = ? "
                "WHERE id = ? AND status = ?",
                (
                    ParseStatus.PENDING_REVIEW.value,
                    aggregated.model_dump_json(),
                    json.dumps(merged_raw),
                    json.dumps(logs),
                    _now(),
                    schedule_id,
                    current.status.value,
                ),
            )
            await db.commit()
            updated = cursor.rowcount > 0

        if not updated:
            latest = await self.get(schedule_id)
            raise _transition_error(schedule_id, latest.status, ParseStatus.PENDING_REVIEW)

        logger.info(
            "parsed_schedule_analysis_stored",
            schedule_id=schedule_id,
            shows=len(aggregated.shows),
            vendors=len(aggregated.vendors),
            djs=len(aggregated.djs),
        )
        return await self.get(schedule_id)

    async def append_logs(self, schedule_id: str, lines: list[str]) -> None:
        if not lines:
            return
        current = await self.get(schedule_id)
        if current.status in TERMINAL_STATUSES:
            raise _transition_error(schedule_id, current.status, current.status)
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "UPDATE parsed_schedules SET parsing_logs = ?, updated_at = ? "
                "WHERE id = ? AND status = ?",
                (
                    json.dumps([*current.parsing_logs, *lines]),
                    _now(),
                    schedule_id,
                    current.status.value,
                ),
            )
            await db.commit()
            updated = cursor.rowcount > 0

        if not updated:
            latest = await self.get(schedule_id)
            raise _transition_error(schedule_id, latest.status, current.status)
