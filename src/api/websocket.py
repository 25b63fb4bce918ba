"""WebSocket endpoint for real-time run progress updates.

Connects a client to one parsing run via the ``ProgressTracker`` listener
mechanism.  Every update is pushed as the JSON form of
:class:`~src.models.pipeline.RunProgress`::

    {"scheduleId": "...", "phase": "EXTRACTION", "progress": 42.5,
     "message": "...", "unitsTotal": 12, "unitsDone": 5, "updatedAt": "..."}

The ``receive_text`` loop only keeps the connection open; pushes happen
from the tracker callback.
"""

from __future__ import annotations

import contextlib
from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from pydantic.alias_generators import to_camel

from src.models.pipeline import RunProgress
from src.pipeline.progress_tracker import ProgressTracker
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def progress_message(snapshot: RunProgress) -> dict[str, Any]:
    data = snapshot.model_dump(mode="json")
    data["progress"] = round(snapshot.progress, 1)
    return {to_camel(key): value for key, value in data.items()}


async def websocket_progress(websocket: WebSocket, schedule_id: str) -> None:
    """Stream progress updates for *schedule_id* until the client disconnects.

    The current snapshot is sent immediately on connect so a client that
    subscribes late is still up to date.
    """
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker

    await websocket.accept()
    _logger.info("websocket_connected", schedule_id=schedule_id)

    async def _on_progress(snapshot: RunProgress) -> None:
        # The socket may close between updates; cleanup happens below.
        with contextlib.suppress(Exception):
            await websocket.send_json(progress_message(snapshot))

    progress_tracker.register_listener(schedule_id, _on_progress)

    try:
        await websocket.send_json(progress_message(progress_tracker.get_status(schedule_id)))
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", schedule_id=schedule_id)

    finally:
        progress_tracker.unregister_listener(schedule_id, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", schedule_id=schedule_id)
