"""Abstract base class for the parsed-schedule staging store.

The staging store is the only component that persists
:class:`~src.models.schedule.ParsedSchedule` records.  The pipeline calls
:meth:`IStagingStore.create` once per run and :meth:`store_analysis` once
when the run's aggregated result is ready; workers never write here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.models.aggregation import AggregatedResult
from src.models.schedule import CommittedEntities, ParsedSchedule, ParseStatus


# Concrete implementation: SQLiteStagingStore (src/providers/staging/)
class IStagingStore(ABC):
    """Contract for persisting staging records and their lifecycle."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def create(
        self,
        url: str,
        aggregated: AggregatedResult | None = None,
        raw_data: dict[str, Any] | None = None,
    ) -> str:
        """Insert a new record and return its id.

        With *aggregated* the record starts in ``PENDING_REVIEW``; without
        it the record starts in ``PENDING`` and is completed later through
        :meth:`store_analysis`.
        """

    @abstractmethod
    async def get(self, schedule_id: str) -> ParsedSchedule:
        """Return one record.

        Raises
        ------
        src.utils.errors.ScheduleNotFoundError
            If no record exists for *schedule_id*.
        """

    @abstractmethod
    async def list_by_status(
        self, status: ParseStatus, limit: int = 100
    ) -> list[ParsedSchedule]:
        """Return records in *status*, newest first."""

    @abstractmethod
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
        """Move a record to *status*, enforcing the allowed transitions.

        Raises
        ------
        src.utils.errors.AlreadyTerminalError
            If the record is already approved, rejected or failed.
        src.utils.errors.InvalidStatusTransitionError
            For any other transition the state machine forbids.
        """

    @abstractmethod
    async def store_analysis(
        self,
        schedule_id: str,
        aggregated: AggregatedResult,
        raw_data: dict[str, Any] | None = None,
        parsing_logs: list[str] | None = None,
    ) -> ParsedSchedule:
        """Write a run's aggregated result and move the record to ``PENDING_REVIEW``."""

    @abstractmethod
    async def append_logs(self, schedule_id: str, lines: list[str]) -> None:
        """Append lines to the record's parsing log without changing its status.

        Raises
        ------
        AlreadyTerminalError
            If the record has been approved, rejected or failed.
        """
