"""Unit tests for the review/approval gateway."""

from __future__ import annotations

import pytest

from src.models.aggregation import DJ, AggregatedResult, Show, Vendor
from src.models.schedule import ParseStatus, ReviewEdits
from src.providers.entity_store.sqlite_entity_store import SQLiteEntityStore
from src.providers.staging.sqlite_staging_store import SQLiteStagingStore
from src.services.review_service import ReviewGateway
from src.utils.errors import (
    AlreadyTerminalError,
    InvalidStatusTransitionError,
    ScheduleNotFoundError,
)

_URL = "https://starkaraoke.com/"


def _result() -> AggregatedResult:
    return AggregatedResult(
        vendors=[Vendor(id="vendor-1", name="Star Karaoke", sources=[_URL])],
        djs=[DJ(id="dj-1", name="KJ Mike", sources=[_URL])],
        shows=[
            Show(
                id="show-1",
                venue="Joe's Bar",
                city="Austin",
                day="friday",
                start_time="20:00",
                dj_name="KJ Mike",
                dj_id="dj-1",
                vendor_name="Star Karaoke",
                vendor_id="vendor-1",
                source=_URL,
            ),
            Show(
                id="show-2",
                venue="Rusty Nail",
                city="Austin",
                day="saturday",
                start_time="21:00",
                source=_URL,
            ),
        ],
    )


@pytest.fixture
def gateway(
    staging_store: SQLiteStagingStore, entity_store: SQLiteEntityStore
) -> ReviewGateway:
    return ReviewGateway(staging=staging_store, entities=entity_store)


class TestReviewGateway:
    @pytest.mark.asyncio
    async def test_approve_commits_and_records_review(
        self,
        gateway: ReviewGateway,
        staging_store: SQLiteStagingStore,
        entity_store: SQLiteEntityStore,
    ) -> None:
        schedule_id = await staging_store.create(_URL, aggregated=_result())

        committed = await gateway.approve(schedule_id, reviewed_by="alex", comments="ok")

        assert len(committed.vendor_ids) == 1
        assert len(committed.dj_ids) == 1
        assert len(committed.venue_ids) == 2
        assert len(committed.show_ids) == 2
        assert await entity_store.count_shows() == 2

        record = await staging_store.get(schedule_id)
        assert record.status is ParseStatus.APPROVED
        assert record.reviewed_by == "alex"
        assert record.committed == committed

    @pytest.mark.asyncio
    async def test_dj_attached_to_vendor_of_linking_show(
        self,
        gateway: ReviewGateway,
        staging_store: SQLiteStagingStore,
        entity_store: SQLiteEntityStore,
    ) -> None:
        schedule_id = await staging_store.create(_URL, aggregated=_result())

        committed = await gateway.approve(schedule_id)

        vendor_id = committed.vendor_ids[0]
        assert await entity_store.upsert_dj("Mike", vendor_id=vendor_id) == committed.dj_ids[0]

    @pytest.mark.asyncio
    async def test_second_approval_rejected(
        self, gateway: ReviewGateway, staging_store: SQLiteStagingStore
    ) -> None:
        schedule_id = await staging_store.create(_URL, aggregated=_result())
        await gateway.approve(schedule_id)

        with pytest.raises(AlreadyTerminalError):
            await gateway.approve(schedule_id)

    @pytest.mark.asyncio
    async def test_approving_equivalent_data_does_not_duplicate(
        self,
        gateway: ReviewGateway,
        staging_store: SQLiteStagingStore,
        entity_store: SQLiteEntityStore,
    ) -> None:
        first = await staging_store.create(_URL, aggregated=_result())
        second = await staging_store.create(_URL, aggregated=_result())

        committed_first = await gateway.approve(first)
        committed_second = await gateway.approve(second)

        assert committed_first == committed_second
        assert await entity_store.count_shows() == 2

    @pytest.mark.asyncio
    async def test_record_still_parsing_cannot_be_approved(
        self, gateway: ReviewGateway, staging_store: SQLiteStagingStore
    ) -> None:
        schedule_id = await staging_store.create(_URL)
        await staging_store.update_status(schedule_id, ParseStatus.PARSING)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await gateway.approve(schedule_id)

        assert not isinstance(exc_info.value, AlreadyTerminalError)

    @pytest.mark.asyncio
    async def test_show_selection_narrows_commit(
        self,
        gateway: ReviewGateway,
        staging_store: SQLiteStagingStore,
        entity_store: SQLiteEntityStore,
    ) -> None:
        schedule_id = await staging_store.create(_URL, aggregated=_result())

        committed = await gateway.approve(schedule_id, edits=ReviewEdits(show_ids=["show-2"]))

        assert len(committed.show_ids) == 1
        assert committed.vendor_ids == []
        assert committed.dj_ids == []
        assert await entity_store.count_shows() == 1

    @pytest.mark.asyncio
    async def test_edited_result_replaces_analysis(
        self,
        gateway: ReviewGateway,
        staging_store: SQLiteStagingStore,
        entity_store: SQLiteEntityStore,
    ) -> None:
        schedule_id = await staging_store.create(_URL, aggregated=_result())
        edited = AggregatedResult(
            shows=[Show(id="show-9", venue="Corner Pub", day="monday", source=_URL)]
        )

        committed = await gateway.approve(schedule_id, edits=ReviewEdits(aggregated=edited))

        assert len(committed.show_ids) == 1
        assert committed.venue_ids == [await entity_store.upsert_venue("Corner Pub")]

    @pytest.mark.asyncio
    async def test_reject_commits_nothing(
        self,
        gateway: ReviewGateway,
        staging_store: SQLiteStagingStore,
        entity_store: SQLiteEntityStore,
    ) -> None:
        schedule_id = await staging_store.create(_URL, aggregated=_result())

        record = await gateway.reject(schedule_id, reason="wrong vendor", reviewed_by="alex")

        assert record.status is ParseStatus.REJECTED
        assert record.rejection_reason == "wrong vendor"
        assert record.reviewed_at is not None
        assert await entity_store.count_shows() == 0

        with pytest.raises(AlreadyTerminalError):
            await gateway.approve(schedule_id)

    @pytest.mark.asyncio
    async def test_unknown_record(self, gateway: ReviewGateway) -> None:
        with pytest.raises(ScheduleNotFoundError):
            await gateway.reject("missing", reason="x")

    @pytest.mark.asyncio
    async def test_pending_queue_lists_only_reviewable(
        self, gateway: ReviewGateway, staging_store: SQLiteStagingStore
    ) -> None:
        waiting = await staging_store.create(_URL, aggregated=_result())
        approved = await staging_store.create(_URL, aggregated=_result())
        await gateway.approve(approved)
        await staging_store.create(_URL)

        pending = await gateway.list_pending_reviews()

        assert [r.id for r in pending] == [waiting]
