"""Run-progress models for the schedule parsing pipeline.

The orchestrator reports one :class:`RunPhase` at a time to the progress
tracker, which fans the updates out to WebSocket listeners.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RunPhase(str, Enum):  # noqa: UP042
    """Phases of one parsing run, in order.

        QUEUED -> DISCOVERY -> EXTRACTION -> AGGREGATION -> STAGING -> DONE

    FAILED and CANCELLED can be reached from any non-final phase.
    """

    QUEUED = "QUEUED"
    DISCOVERY = "DISCOVERY"
    EXTRACTION = "EXTRACTION"
    AGGREGATION = "AGGREGATION"
    STAGING = "STAGING"
    DONE = "DONE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class RunProgress(BaseModel):
    """Snapshot of a run's progress, as pushed to listeners."""

    model_config = ConfigDict(frozen=True)

    schedule_id: str
    phase: RunPhase = RunPhase.QUEUED
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    message: str = ""
    units_total: int = 0
    units_done: int = 0
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
