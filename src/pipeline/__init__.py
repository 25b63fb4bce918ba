"""Pipeline orchestration components for the schedule parsing pipeline."""

from src.pipeline.orchestrator import ScheduleParsingPipeline
from src.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "ProgressTracker",
    "ScheduleParsingPipeline",
]
