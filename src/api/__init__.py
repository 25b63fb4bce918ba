"""karaoke-scout API layer: routes, schemas, WebSocket, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    ApproveRequest,
    ApproveResponse,
    ErrorResponse,
    HealthResponse,
    ParsedScheduleResponse,
    ParseRequest,
    ParseResponse,
    PendingReviewsResponse,
    RejectRequest,
    RunStatusResponse,
)
from src.api.websocket import websocket_progress

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_progress",
    "ApproveRequest",
    "ApproveResponse",
    "ErrorResponse",
    "HealthResponse",
    "ParsedScheduleResponse",
    "ParseRequest",
    "ParseResponse",
    "PendingReviewsResponse",
    "RejectRequest",
    "RunStatusResponse",
]
