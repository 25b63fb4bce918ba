"""Parsed-schedule staging record and its review state machine.

Lifecycle::

    PENDING -> PARSING -> PENDING_REVIEW -> APPROVED
                  |                    \\-> REJECTED
                  \\-> FAILED

APPROVED, REJECTED and FAILED are terminal.  Re-running extraction on a
terminal record creates a new record; a PENDING_REVIEW record can be
re-parsed in place (its analysis is overwritten, status stays
PENDING_REVIEW).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.models.aggregation import AggregatedResult


class ParseStatus(str, Enum):  # noqa: UP042
    PENDING = "pending"
    PARSING = "parsing"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[ParseStatus] = frozenset(
    {ParseStatus.APPROVED, ParseStatus.REJECTED, ParseStatus.FAILED}
)

ALLOWED_TRANSITIONS: dict[ParseStatus, frozenset[ParseStatus]] = {
    ParseStatus.PENDING: frozenset({ParseStatus.PARSING, ParseStatus.FAILED}),
    ParseStatus.PARSING: frozenset({ParseStatus.PENDING_REVIEW, ParseStatus.FAILED}),
    ParseStatus.PENDING_REVIEW: frozenset(
        {ParseStatus.PENDING_REVIEW, ParseStatus.APPROVED, ParseStatus.REJECTED}
    ),
    ParseStatus.APPROVED: frozenset(),
    ParseStatus.REJECTED: frozenset(),
    ParseStatus.FAILED: frozenset(),
}


def can_transition(current: ParseStatus, target: ParseStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class ScheduleOutcome(str, Enum):  # noqa: UP042
    """What a reviewer sees at a glance: an empty result is not a failure."""

    IN_PROGRESS = "in_progress"
    SHOWS_FOUND = "shows_found"
    NO_SHOWS_FOUND = "no_shows_found"
    FAILED = "failed"


class CommittedEntities(BaseModel):
    """Ids of the entities written to persistence by an approval."""

    model_config = ConfigDict(frozen=True)

    vendor_ids: list[str] = Field(default_factory=list)
    dj_ids: list[str] = Field(default_factory=list)
    venue_ids: list[str] = Field(default_factory=list)
    show_ids: list[str] = Field(default_factory=list)


class ReviewEdits(BaseModel):
    """Reviewer changes applied at approval time.

    ``aggregated`` replaces the stored analysis wholesale; ``show_ids``
    then narrows the commit to the listed shows (and the vendors/DJs they
    reference).
    """

    model_config = ConfigDict(frozen=True)

    aggregated: AggregatedResult | None = None
    show_ids: list[str] | None = None


class ParsedSchedule(BaseModel):
    """One discovery+extraction run awaiting (or past) human review."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    status: ParseStatus = ParseStatus.PENDING
    raw_data: dict[str, Any] = Field(default_factory=dict)
    ai_analysis: AggregatedResult | None = None
    error: str | None = None
    parsing_logs: list[str] = Field(default_factory=list)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    rejection_reason: str | None = None
    review_comments: str | None = None
    committed: CommittedEntities | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def outcome(self) -> ScheduleOutcome:
        if self.status is ParseStatus.FAILED:
            return ScheduleOutcome.FAILED
        if self.status in (ParseStatus.PENDING, ParseStatus.PARSING):
            return ScheduleOutcome.IN_PROGRESS
        if self.ai_analysis is not None and self.ai_analysis.shows:
            return ScheduleOutcome.SHOWS_FOUND
        return ScheduleOutcome.NO_SHOWS_FOUND
