"""Run progress tracking with callback-based listener notification.

Tracks the current phase and progress percentage for each parsing run
and broadcasts updates to registered listener callbacks.  Listeners are
keyed by schedule ID so multiple runs can proceed concurrently without
cross-talk.

# --- HOW PROGRESS TRACKING WORKS -------------------------------------
#
#   Pipeline --update()--> ProgressTracker --callback(RunProgress)--> WebSocket handler
#                                                                 --> (any other listener)
#
#   1. The orchestrator calls tracker.update(schedule_id, phase, progress, msg)
#   2. ProgressTracker stores the snapshot and calls all registered listeners
#   3. The WebSocket handler pushes the snapshot as JSON to the client
#
# Listener errors are logged and skipped.  Both sync and async callbacks
# are supported.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.models.pipeline import RunPhase, RunProgress
from src.utils.logging import get_logger


class ProgressTracker:
    """Tracks and broadcasts run progress via callbacks.

    Each run is identified by its ``schedule_id``.  External consumers
    register callbacks that receive a :class:`RunProgress` snapshot
    whenever :meth:`update` is called for that run.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, RunProgress] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        schedule_id: str,
        phase: RunPhase,
        progress: float,
        message: str,
        units_total: int | None = None,
        units_done: int | None = None,
    ) -> RunProgress:
        """Record a progress update and notify all registered listeners.

        Parameters
        ----------
        schedule_id:
            The run to update.
        phase:
            The current run phase.
        progress:
            Completion percentage (0.0 - 100.0).
        message:
            Human-readable status message.
        units_total, units_done:
            Unit counters; omitted values carry over from the previous
            snapshot.
        """
        previous = self._statuses.get(schedule_id)
        snapshot = RunProgress(
            schedule_id=schedule_id,
            phase=phase,
            progress=max(0.0, min(100.0, progress)),
            message=message,
            units_total=(
                units_total if units_total is not None
                else (previous.units_total if previous else 0)
            ),
            units_done=(
                units_done if units_done is not None
                else (previous.units_done if previous else 0)
            ),
        )
        self._statuses[schedule_id] = snapshot

        self._logger.debug(
            "progress_update",
            schedule_id=schedule_id,
            phase=phase.value,
            progress=round(snapshot.progress, 1),
            message=message,
        )

        await self._notify_listeners(snapshot)
        return snapshot

    def register_listener(self, schedule_id: str, callback: Callable) -> None:
        """Register a callback accepting a :class:`RunProgress` for *schedule_id*."""
        listeners = self._listeners.setdefault(schedule_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                schedule_id=schedule_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, schedule_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(schedule_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                schedule_id=schedule_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(schedule_id, None)

    def get_status(self, schedule_id: str) -> RunProgress:
        """Return the latest snapshot, or a QUEUED placeholder if none exists."""
        status = self._statuses.get(schedule_id)
        if status is None:
            return RunProgress(schedule_id=schedule_id)
        return status

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, snapshot: RunProgress) -> None:
        for callback in list(self._listeners.get(snapshot.schedule_id, [])):
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    schedule_id=snapshot.schedule_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
