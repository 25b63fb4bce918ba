"""Human review of staged parse results.

Nothing a run extracts reaches the entity store until a reviewer approves
it here.  Approval commits the (optionally edited or narrowed) aggregated
result with find-or-create semantics, so approving equivalent data twice
never duplicates vendors, DJs, venues or shows.
"""

from __future__ import annotations

import structlog

from src.interfaces.entity_store import IEntityStore
from src.interfaces.staging_store import IStagingStore
from src.models.aggregation import AggregatedResult
from src.models.schedule import (
    CommittedEntities,
    ParsedSchedule,
    ParseStatus,
    ReviewEdits,
)
from src.utils.errors import AlreadyTerminalError, InvalidStatusTransitionError

logger = structlog.get_logger(logger_name=__name__)


class ReviewGateway:
    """Approve or reject parsed schedules awaiting review.

    Parameters
    ----------
    staging:
        Where parse results wait for review.
    entities:
        Persistent store that approved data is committed to.
    """

    def __init__(self, staging: IStagingStore, entities: IEntityStore) -> None:
        self._staging = staging
        self._entities = entities

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_pending_reviews(self, limit: int = 100) -> list[ParsedSchedule]:
        return await self._staging.list_by_status(ParseStatus.PENDING_REVIEW, limit=limit)

    async def get(self, schedule_id: str) -> ParsedSchedule:
        return await self._staging.get(schedule_id)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def approve(
        self,
        schedule_id: str,
        edits: ReviewEdits | None = None,
        reviewed_by: str | None = None,
        comments: str | None = None,
    ) -> CommittedEntities:
        """Commit the record's analysis and mark it approved.

        ``edits.aggregated`` replaces the stored analysis; ``edits.show_ids``
        then limits the commit to those shows and the entities they
        reference.

        Raises
        ------
        ScheduleNotFoundError
            If *schedule_id* does not exist.
        AlreadyTerminalError
            If the record was already approved, rejected or failed.
        InvalidStatusTransitionError
            If the record is still being parsed.
        """
        record = await self._require_reviewable(schedule_id)

        aggregated = record.ai_analysis or AggregatedResult()
        if edits is not None and edits.aggregated is not None:
            aggregated = edits.aggregated
        if edits is not None and edits.show_ids is not None:
            aggregated = aggregated.select_shows(edits.show_ids)

        committed = await self._commit(aggregated)
        await self._staging.update_status(
            schedule_id,
            ParseStatus.APPROVED,
            reviewed_by=reviewed_by,
            review_comments=comments,
            committed=committed,
        )
        logger.info(
            "parsed_schedule_approved",
            schedule_id=schedule_id,
            reviewed_by=reviewed_by,
            vendors=len(committed.vendor_ids),
            djs=len(committed.dj_ids),
            venues=len(committed.venue_ids),
            shows=len(committed.show_ids),
        )
        return committed

    async def reject(
        self,
        schedule_id: str,
        reason: str,
        reviewed_by: str | None = None,
    ) -> ParsedSchedule:
        """Mark the record rejected; nothing is committed."""
        await self._require_reviewable(schedule_id)
        updated = await self._staging.update_status(
            schedule_id,
            ParseStatus.REJECTED,
            reviewed_by=reviewed_by,
            rejection_reason=reason,
        )
        logger.info(
            "parsed_schedule_rejected",
            schedule_id=schedule_id,
            reviewed_by=reviewed_by,
            reason=reason,
        )
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _require_reviewable(self, schedule_id: str) -> ParsedSchedule:
        record = await self._staging.get(schedule_id)
        if record.is_terminal:
            raise AlreadyTerminalError(
                message=f"Parsed schedule {schedule_id} is already {record.status.value}"
            )
        if record.status is not ParseStatus.PENDING_REVIEW:
            raise InvalidStatusTransitionError(
                message=(
                    f"Parsed schedule {schedule_id} is {record.status.value}, "
                    "not pending review"
                )
            )
        return record

    async def _commit(self, aggregated: AggregatedResult) -> CommittedEntities:
        vendor_ids: dict[str, str] = {}
        for vendor in aggregated.vendors:
            vendor_ids[vendor.id] = await self._entities.upsert_vendor(
                vendor.name, website=vendor.website, description=vendor.description
            )

        # A DJ belongs to the vendor of the first show that links both.
        dj_vendor: dict[str, str] = {}
        for show in aggregated.shows:
            if show.dj_id and show.vendor_id in vendor_ids:
                dj_vendor.setdefault(show.dj_id, vendor_ids[show.vendor_id])

        dj_ids: dict[str, str] = {}
        for dj in aggregated.djs:
            dj_ids[dj.id] = await self._entities.upsert_dj(
                dj.name, vendor_id=dj_vendor.get(dj.id)
            )

        venue_ids: list[str] = []
        show_ids: list[str] = []
        for show in aggregated.shows:
            venue_id = await self._entities.upsert_venue(
                show.venue,
                address=show.address,
                city=show.city,
                state=show.state,
                zip_code=show.zip,
                lat=show.lat,
                lng=show.lng,
                phone=show.venue_phone,
                website=show.venue_website,
            )
            if venue_id not in venue_ids:
                venue_ids.append(venue_id)
            show_ids.append(
                await self._entities.upsert_show(
                    venue_id,
                    day=show.day,
                    start_time=show.start_time,
                    end_time=show.end_time,
                    description=show.description,
                    source=show.source,
                    vendor_id=vendor_ids.get(show.vendor_id) if show.vendor_id else None,
                    dj_id=dj_ids.get(show.dj_id) if show.dj_id else None,
                )
            )

        return CommittedEntities(
            vendor_ids=list(dict.fromkeys(vendor_ids.values())),
            dj_ids=list(dict.fromkeys(dj_ids.values())),
            venue_ids=venue_ids,
            show_ids=list(dict.fromkeys(show_ids)),
        )
