"""karaoke-scout domain models -- re-exports all public model classes.

The models are organized by pipeline stage:
    - content.py      -- content units, fetch results, discovery options
    - extraction.py   -- per-unit candidate records (one worker's guess)
    - aggregation.py  -- deduplicated vendors, DJs and shows for one run
    - schedule.py     -- the staging record and its review state machine
    - pipeline.py     -- run-progress snapshots
"""

from __future__ import annotations

from src.models.aggregation import DJ, AggregatedResult, Show, Vendor
from src.models.content import (
    ClassifiedUrl,
    ContentKind,
    ContentUnit,
    DiscoveryMode,
    DiscoveryOptions,
    FetchedContent,
    SizeHint,
)
from src.models.extraction import (
    CandidateDJ,
    CandidateRecord,
    CandidateShow,
    CandidateVendor,
    UnitStatus,
)
from src.models.pipeline import RunPhase, RunProgress
from src.models.schedule import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    CommittedEntities,
    ParsedSchedule,
    ParseStatus,
    ReviewEdits,
    ScheduleOutcome,
    can_transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AggregatedResult",
    "CandidateDJ",
    "CandidateRecord",
    "CandidateShow",
    "CandidateVendor",
    "ClassifiedUrl",
    "CommittedEntities",
    "ContentKind",
    "ContentUnit",
    "DJ",
    "DiscoveryMode",
    "DiscoveryOptions",
    "FetchedContent",
    "ParseStatus",
    "ParsedSchedule",
    "ReviewEdits",
    "RunPhase",
    "RunProgress",
    "ScheduleOutcome",
    "Show",
    "SizeHint",
    "TERMINAL_STATUSES",
    "UnitStatus",
    "Vendor",
    "can_transition",
]
