"""FastAPI API routes for the karaoke-scout pipeline.

Provides REST endpoints to start parse runs, poll their progress, and
review the staged results.  Service dependencies are resolved from
``app.state`` via FastAPI's ``Depends`` using the ``Annotated`` pattern.

# --- API ROUTE MAP ----------------------------------------------------
#
# Endpoint                                       Method  Description
# ---------------------------------------------------------------------
# /api/v1/parse                                  POST    Start a run (202)
# /api/v1/parsed-schedules/pending-reviews       GET     Records awaiting review
# /api/v1/parsed-schedules/{id}                  GET     One staging record
# /api/v1/parsed-schedules/{id}/status           GET     Live run progress
# /api/v1/parsed-schedules/{id}/approve          POST    Commit and approve
# /api/v1/parsed-schedules/{id}/reject           POST    Reject with reason
# /api/v1/parsed-schedules/{id}/reparse          POST    Re-run extraction
# /api/v1/parsed-schedules/{id}/cancel           POST    Abort a running run
# /api/v1/health                                 GET     Health + providers
#
# Each route declares its dependencies as Annotated params; the helper
# functions read them from app.state (populated at startup in main.py).
# ----------------------------------------------------------------------
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from src.api.middleware import status_code_for
from src.api.schemas import (
    ApproveRequest,
    ApproveResponse,
    CancelResponse,
    ErrorResponse,
    HealthResponse,
    ParsedScheduleResponse,
    ParseRequest,
    ParseResponse,
    PendingReviewsResponse,
    RejectRequest,
    ReparseResponse,
    RunStatusResponse,
)
from src.models.schedule import ParseStatus, ReviewEdits
from src.pipeline.orchestrator import ScheduleParsingPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.services.review_service import ReviewGateway
from src.utils.errors import ReviewError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_pipeline(request: Request) -> ScheduleParsingPipeline:
    return request.app.state.pipeline


def _get_review_gateway(request: Request) -> ReviewGateway:
    return request.app.state.review_gateway


def _get_progress_tracker(request: Request) -> ProgressTracker:
    return request.app.state.progress_tracker


PipelineDep = Annotated[ScheduleParsingPipeline, Depends(_get_pipeline)]
ReviewDep = Annotated[ReviewGateway, Depends(_get_review_gateway)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]

_REVIEW_ERRORS: dict[int | str, dict[str, Any]] = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _http_error(exc: ReviewError) -> HTTPException:
    return HTTPException(status_code=status_code_for(exc), detail=exc.message)


# ---------------------------------------------------------------------------
# Parse runs
# ---------------------------------------------------------------------------


@router.post(
    "/parse",
    response_model=ParseResponse,
    status_code=202,
    summary="Discover and extract karaoke schedules from a URL",
)
async def start_parse(
    body: ParseRequest,
    background_tasks: BackgroundTasks,
    pipeline: PipelineDep,
) -> ParseResponse:
    """Create a staging record and run the pipeline in the background."""
    options = body.to_options(pipeline.default_options())
    schedule_id = await pipeline.start(body.url, options)
    background_tasks.add_task(pipeline.run, schedule_id, options)
    _logger.info("parse_requested", schedule_id=schedule_id, url=body.url, mode=options.mode.value)
    return ParseResponse(schedule_id=schedule_id, status=ParseStatus.PENDING)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


@router.get(
    "/parsed-schedules/pending-reviews",
    response_model=PendingReviewsResponse,
    summary="List parsed schedules awaiting review",
)
async def list_pending_reviews(
    review: ReviewDep,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> PendingReviewsResponse:
    records = await review.list_pending_reviews(limit=limit)
    items = [ParsedScheduleResponse.from_schedule(r) for r in records]
    return PendingReviewsResponse(items=items, total=len(items))


@router.get(
    "/parsed-schedules/{schedule_id}",
    response_model=ParsedScheduleResponse,
    responses=_REVIEW_ERRORS,
    summary="Get one parsed schedule",
)
async def get_parsed_schedule(schedule_id: str, review: ReviewDep) -> ParsedScheduleResponse:
    try:
        record = await review.get(schedule_id)
    except ReviewError as exc:
        raise _http_error(exc) from exc
    return ParsedScheduleResponse.from_schedule(record)


@router.get(
    "/parsed-schedules/{schedule_id}/status",
    response_model=RunStatusResponse,
    responses=_REVIEW_ERRORS,
    summary="Get live progress of a run",
)
async def get_run_status(
    schedule_id: str,
    review: ReviewDep,
    tracker: TrackerDep,
) -> RunStatusResponse:
    try:
        record = await review.get(schedule_id)
    except ReviewError as exc:
        raise _http_error(exc) from exc
    return RunStatusResponse.build(record, tracker.get_status(schedule_id))


@router.post(
    "/parsed-schedules/{schedule_id}/approve",
    response_model=ApproveResponse,
    responses=_REVIEW_ERRORS,
    summary="Approve a parsed schedule and commit its entities",
)
async def approve_parsed_schedule(
    schedule_id: str,
    body: ApproveRequest,
    review: ReviewDep,
) -> ApproveResponse:
    """Commit the (optionally edited) result; 409 unless pending review."""
    edits = None
    if body.edits is not None or body.show_ids is not None:
        edits = ReviewEdits(aggregated=body.edits, show_ids=body.show_ids)
    try:
        committed = await review.approve(
            schedule_id,
            edits=edits,
            reviewed_by=body.reviewed_by,
            comments=body.comments,
        )
    except ReviewError as exc:
        raise _http_error(exc) from exc
    return ApproveResponse(
        schedule_id=schedule_id,
        status=ParseStatus.APPROVED,
        committed=committed,
    )


@router.post(
    "/parsed-schedules/{schedule_id}/reject",
    response_model=ParsedScheduleResponse,
    responses=_REVIEW_ERRORS,
    summary="Reject a parsed schedule",
)
async def reject_parsed_schedule(
    schedule_id: str,
    body: RejectRequest,
    review: ReviewDep,
) -> ParsedScheduleResponse:
    try:
        record = await review.reject(schedule_id, body.reason, reviewed_by=body.reviewed_by)
    except ReviewError as exc:
        raise _http_error(exc) from exc
    return ParsedScheduleResponse.from_schedule(record)


@router.post(
    "/parsed-schedules/{schedule_id}/reparse",
    response_model=ReparseResponse,
    status_code=202,
    responses=_REVIEW_ERRORS,
    summary="Re-run discovery and extraction",
)
async def reparse_parsed_schedule(
    schedule_id: str,
    background_tasks: BackgroundTasks,
    pipeline: PipelineDep,
) -> ReparseResponse:
    """Re-parse in place when pending review; otherwise start a new record."""
    try:
        run_id = await pipeline.reparse(schedule_id)
    except ReviewError as exc:
        raise _http_error(exc) from exc
    background_tasks.add_task(pipeline.run, run_id)
    status = ParseStatus.PENDING_REVIEW if run_id == schedule_id else ParseStatus.PENDING
    return ReparseResponse(schedule_id=run_id, reparse_of=schedule_id, status=status)


@router.post(
    "/parsed-schedules/{schedule_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a running parse",
)
async def cancel_parse(schedule_id: str, pipeline: PipelineDep) -> CancelResponse:
    return CancelResponse(schedule_id=schedule_id, cancelled=pipeline.cancel(schedule_id))


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("llm", False) else "degraded"
    return HealthResponse(status=status, version="0.1.0", providers=providers)
