"""Unit tests for cross-unit aggregation and deduplication."""

from __future__ import annotations

import itertools

import pytest

from conftest import make_record
from src.models.extraction import CandidateRecord, UnitStatus
from src.services.aggregator import Aggregator

_HOME = "https://starkaraoke.com/"
_SCHEDULE = "https://starkaraoke.com/schedule"
_BROKEN = "https://starkaraoke.com/broken"


def _scenario() -> list[CandidateRecord]:
    home = make_record(
        _HOME,
        0,
        vendor={"name": "Star Karaoke", "website": "https://starkaraoke.com", "confidence": 0.7},
        djs=[{"name": "KJ Mike", "confidence": 0.8}],
        shows=[
            {
                "venue": "Joe's Bar",
                "city": "Austin",
                "state": "TX",
                "day": "friday",
                "startTime": "20:00",
                "djName": "KJ Mike",
                "confidence": 0.6,
            }
        ],
    )
    schedule = make_record(
        _SCHEDULE,
        1,
        vendor={
            "name": "Star Karaoke Co",
            "website": "www.starkaraoke.com",
            "description": "Karaoke every night of the week",
            "confidence": 0.9,
        },
        djs=[{"name": "Mike", "aliases": ["Mikey"], "confidence": 0.6}],
        shows=[
            {
                "venue": "Joes Bar",
                "address": "1 Main St",
                "day": "Fri",
                "startTime": "8pm",
                "confidence": 0.9,
            },
            {
                "venue": "Rusty Nail",
                "city": "Austin",
                "day": "saturday",
                "startTime": "21:00",
                "djName": "KJ Nobody",
                "confidence": 0.7,
            },
        ],
    )
    broken = CandidateRecord.empty(_BROKEN, 2, status=UnitStatus.FAILED, error="HTTP 500")
    return [home, schedule, broken]


class TestShowDeduplication:
    def test_spelling_variants_collapse_to_one_show(self) -> None:
        result = Aggregator().aggregate(_scenario())

        joes = [s for s in result.shows if s.venue in ("Joe's Bar", "Joes Bar")]
        assert len(joes) == 1
        show = joes[0]
        assert show.day == "friday"
        assert show.start_time == "20:00"

    def test_fields_prefer_highest_confidence_non_null(self) -> None:
        show = Aggregator().aggregate(_scenario()).shows[0]

        assert show.venue == "Joes Bar"
        assert show.address == "1 Main St"
        assert show.city == "Austin"
        assert show.state == "TX"
        assert show.confidence == pytest.approx(0.9)

    def test_source_is_earliest_seen_unit(self) -> None:
        shows = Aggregator().aggregate(_scenario()).shows

        assert shows[0].source == _HOME
        assert shows[1].source == _SCHEDULE

    def test_empty_source_stamped_with_unit_url(self) -> None:
        record = make_record(_SCHEDULE, 3, shows=[{"venue": "Rusty Nail", "day": "monday"}])
        assert record.shows[0].source == ""

        result = Aggregator().aggregate([record])

        assert result.shows[0].source == _SCHEDULE

    def test_different_day_is_a_different_show(self) -> None:
        record = make_record(
            _HOME,
            0,
            shows=[
                {"venue": "Joe's Bar", "day": "friday", "startTime": "20:00"},
                {"venue": "Joe's Bar", "day": "saturday", "startTime": "20:00"},
            ],
        )
        result = Aggregator().aggregate([record])
        assert [s.day for s in result.shows] == ["friday", "saturday"]

    def test_missing_day_and_time_still_dedupe_on_venue(self) -> None:
        result = Aggregator().aggregate(
            [
                make_record(_HOME, 0, shows=[{"venue": "Joe's Bar"}]),
                make_record(_SCHEDULE, 1, shows=[{"venue": "JOES BAR"}]),
            ]
        )
        assert len(result.shows) == 1
        assert result.shows[0].source == _HOME


class TestEntityDeduplication:
    def test_similar_vendor_names_with_shared_domain_merge(self) -> None:
        result = Aggregator().aggregate(_scenario())

        assert len(result.vendors) == 1
        vendor = result.vendors[0]
        assert vendor.name == "Star Karaoke Co"
        assert vendor.description == "Karaoke every night of the week"
        assert vendor.confidence == pytest.approx(0.9)
        assert vendor.sources == [_HOME, _SCHEDULE]

    def test_similar_names_without_corroboration_stay_apart(self) -> None:
        austin = make_record(
            _HOME,
            0,
            vendor={"name": "Star Karaoke"},
            shows=[{"venue": "Joe's Bar", "city": "Austin", "state": "TX"}],
        )
        denver = make_record(
            "https://other.example/",
            1,
            vendor={"name": "Star Karaoke Co"},
            shows=[{"venue": "Mile High Tavern", "city": "Denver", "state": "CO"}],
        )

        result = Aggregator().aggregate([austin, denver])

        assert sorted(v.name for v in result.vendors) == ["Star Karaoke", "Star Karaoke Co"]

    def test_threshold_is_configurable(self) -> None:
        result = Aggregator(similarity_threshold=0.95).aggregate(_scenario())
        assert len(result.vendors) == 2

    def test_dj_role_prefix_ignored_and_aliases_kept(self) -> None:
        result = Aggregator().aggregate(_scenario())

        assert len(result.djs) == 1
        dj = result.djs[0]
        assert dj.name == "KJ Mike"
        assert dj.aliases == ["Mike", "Mikey"]
        assert dj.sources == [_HOME, _SCHEDULE]

    def test_dj_locale_from_single_city(self) -> None:
        record = make_record(
            _HOME,
            0,
            djs=[{"name": "KJ Sara"}],
            shows=[{"venue": "Joe's Bar", "city": "Austin", "state": "TX"}],
        )
        dj = Aggregator().aggregate([record]).djs[0]
        assert (dj.city, dj.state) == ("Austin", "TX")


class TestVendorDedup:
    def test_apostrophe_variants_in_same_city_are_one_vendor(self) -> None:
        first = make_record(
            _HOME,
            0,
            vendor={"name": "Joe's Bar", "city": "Austin", "state": "TX", "confidence": 0.7},
        )
        second = make_record(
            _SCHEDULE,
            1,
            vendor={"name": "Joes Bar", "city": "Austin", "state": "TX", "confidence": 0.9},
        )

        result = Aggregator().aggregate([first, second])

        assert len(result.vendors) == 1
        assert result.vendors[0].name == "Joes Bar"
        assert result.vendors[0].sources == [_HOME, _SCHEDULE]


class TestCrossReferences:
    def test_names_resolve_to_deduplicated_ids(self) -> None:
        result = Aggregator().aggregate(_scenario())
        vendor_id = result.vendors[0].id
        dj_id = result.djs[0].id

        joes, rusty = result.shows
        assert joes.dj_name == "KJ Mike"
        assert joes.dj_id == dj_id
        assert joes.vendor_id == vendor_id
        assert rusty.vendor_id == vendor_id

    def test_unresolved_name_leaves_id_empty(self) -> None:
        rusty = Aggregator().aggregate(_scenario()).shows[1]
        assert rusty.dj_name == "KJ Nobody"
        assert rusty.dj_id is None

    def test_show_inherits_record_vendor(self) -> None:
        record = make_record(
            _HOME, 0, vendor={"name": "Star Karaoke"}, shows=[{"venue": "Joe's Bar"}]
        )
        show = Aggregator().aggregate([record]).shows[0]
        assert show.vendor_name == "Star Karaoke"
        assert show.vendor_id is not None


class TestAggregateInputs:
    def test_result_independent_of_record_order(self) -> None:
        records = _scenario()
        expected = Aggregator().aggregate(records).model_dump()

        for ordering in itertools.permutations(records):
            assert Aggregator().aggregate(list(ordering)).model_dump() == expected

    def test_ids_are_stable(self) -> None:
        first = Aggregator().aggregate(_scenario())
        second = Aggregator().aggregate(_scenario())

        assert [s.id for s in first.shows] == [s.id for s in second.shows]
        assert first.vendors[0].id.startswith("vendor-")
        assert first.djs[0].id.startswith("dj-")
        assert first.shows[0].id.startswith("show-")

    def test_failed_units_contribute_nothing(self) -> None:
        records = _scenario()
        with_failure = Aggregator().aggregate(records)
        without_failure = Aggregator().aggregate(records[:2])

        assert with_failure == without_failure
        assert _BROKEN not in with_failure.vendors[0].sources

    def test_dict_records_validated_and_invalid_dropped(self) -> None:
        home = _scenario()[0]

        result = Aggregator().aggregate(
            [home.model_dump(by_alias=True), {"unitIndex": 5}, "not a record"]
        )

        assert len(result.vendors) == 1
        assert len(result.shows) == 1

    def test_no_records(self) -> None:
        result = Aggregator().aggregate([])
        assert result.is_empty
