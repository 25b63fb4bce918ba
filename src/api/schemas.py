"""Pydantic request/response schemas for the karaoke-scout API.

Defines the public contract for the parse and review endpoints.

# --- HOW SCHEMAS WORK -------------------------------------------------
#
# FastAPI uses these models to validate request bodies (invalid input
# gets a 422), to serialize responses (via response_model=...), and to
# generate the OpenAPI docs at /docs.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".  JSON keys are camelCase to match the aggregated
# result; snake_case keys are accepted on input as well.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.aggregation import AggregatedResult
from src.models.content import DiscoveryMode, DiscoveryOptions
from src.models.pipeline import RunProgress
from src.models.schedule import (
    CommittedEntities,
    ParsedSchedule,
    ParseStatus,
    ScheduleOutcome,
)


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Parse runs
# ---------------------------------------------------------------------------


class ParseRequest(_ApiModel):
    """Start a discovery + extraction run for one seed URL.

    Omitted tunables fall back to the server's configured defaults.
    """

    url: str = Field(min_length=1, description="Seed website or social group URL")
    mode: DiscoveryMode = DiscoveryMode.AUTO
    max_depth: int | None = Field(default=None, ge=0, le=3)
    include_subdomains: bool | None = None
    max_units: int | None = Field(default=None, ge=1, le=500)

    def to_options(self, defaults: DiscoveryOptions) -> DiscoveryOptions:
        return DiscoveryOptions(
            mode=self.mode,
            max_depth=self.max_depth if self.max_depth is not None else defaults.max_depth,
            include_subdomains=(
                self.include_subdomains
                if self.include_subdomains is not None
                else defaults.include_subdomains
            ),
            max_units=self.max_units if self.max_units is not None else defaults.max_units,
        )


class ParseResponse(_ApiModel):
    schedule_id: str
    status: ParseStatus


class RunStatusResponse(_ApiModel):
    """Live progress of a run plus the staging record's status."""

    schedule_id: str
    status: ParseStatus
    outcome: ScheduleOutcome
    phase: str
    progress: float
    message: str | None = None
    units_total: int = 0
    units_done: int = 0
    error: str | None = None

    @classmethod
    def build(cls, record: ParsedSchedule, progress: RunProgress) -> RunStatusResponse:
        return cls(
            schedule_id=record.id,
            status=record.status,
            outcome=record.outcome,
            phase=progress.phase.value,
            progress=progress.progress,
            message=progress.message or None,
            units_total=progress.units_total,
            units_done=progress.units_done,
            error=record.error,
        )


class ReparseResponse(_ApiModel):
    schedule_id: str
    reparse_of: str
    status: ParseStatus


class CancelResponse(_ApiModel):
    schedule_id: str
    cancelled: bool


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


class ParsedScheduleResponse(_ApiModel):
    """A staging record as shown to reviewers.

    ``outcome`` separates a valid empty result (``no_shows_found``) from a
    failed run (``failed``, with ``error`` set).
    """

    id: str
    url: str
    status: ParseStatus
    outcome: ScheduleOutcome
    raw_data: dict[str, Any] = Field(default_factory=dict)
    ai_analysis: AggregatedResult | None = None
    error: str | None = None
    parsing_logs: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    rejection_reason: str | None = None
    review_comments: str | None = None
    committed: CommittedEntities | None = None

    @classmethod
    def from_schedule(cls, record: ParsedSchedule) -> ParsedScheduleResponse:
        data = record.model_dump(exclude={"ai_analysis"})
        return cls(**data, outcome=record.outcome, ai_analysis=record.ai_analysis)


class PendingReviewsResponse(_ApiModel):
    items: list[ParsedScheduleResponse] = Field(default_factory=list)
    total: int = 0


class ApproveRequest(_ApiModel):
    """Approve a pending record, optionally edited or narrowed to some shows."""

    reviewed_by: str | None = None
    comments: str | None = None
    edits: AggregatedResult | None = None
    show_ids: list[str] | None = None


class ApproveResponse(_ApiModel):
    schedule_id: str
    status: ParseStatus
    committed: CommittedEntities


class RejectRequest(_ApiModel):
    reason: str = Field(min_length=1)
    reviewed_by: str | None = None


# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
