"""Unit tests for coercing model payloads into candidate records."""

from __future__ import annotations

import pytest

from conftest import make_unit
from src.models.extraction import UnitStatus
from src.services.candidate_parser import parse_candidate_payload
from src.utils.errors import MalformedModelOutputError

_UNIT = make_unit("https://starkaraoke.com/schedule", index=4)


class TestParseCandidatePayload:
    def test_full_payload(self) -> None:
        payload = {
            "vendor": {"name": "Star Karaoke", "website": "starkaraoke.com", "confidence": 0.9},
            "djs": [{"name": "KJ Mike", "confidence": 0.8}],
            "shows": [
                {
                    "venue": "Joe's Bar",
                    "city": "Austin",
                    "state": "TX",
                    "day": "Fri",
                    "startTime": "8pm",
                    "endTime": "12am",
                    "djName": "KJ Mike",
                    "confidence": 0.9,
                }
            ],
        }

        record = parse_candidate_payload(payload, _UNIT)

        assert record.status is UnitStatus.OK
        assert record.unit_url == _UNIT.url
        assert record.unit_index == 4
        assert record.vendor is not None
        assert record.vendor.name == "Star Karaoke"
        assert [d.name for d in record.djs] == ["KJ Mike"]
        show = record.shows[0]
        assert show.day == "friday"
        assert show.start_time == "20:00"
        assert show.end_time == "00:00"
        assert show.dj_name == "KJ Mike"

    def test_vendors_list_picks_highest_confidence(self) -> None:
        payload = {
            "vendors": [
                {"name": "Maybe Karaoke", "confidence": 0.3},
                {"name": "Star Karaoke", "confidence": 0.9},
            ]
        }
        record = parse_candidate_payload(payload, _UNIT)
        assert record.vendor is not None
        assert record.vendor.name == "Star Karaoke"

    def test_kjs_alias_and_bare_strings(self) -> None:
        record = parse_candidate_payload({"kjs": ["KJ Mike", {"name": "DJ Sara"}]}, _UNIT)
        assert [d.name for d in record.djs] == ["KJ Mike", "DJ Sara"]

    def test_free_text_time_range(self) -> None:
        payload = {"shows": [{"venue": "Joe's Bar", "day": "Saturdays", "time": "9pm-1am"}]}
        show = parse_candidate_payload(payload, _UNIT).shows[0]
        assert show.day == "saturday"
        assert show.start_time == "21:00"
        assert show.end_time == "01:00"

    def test_24_hour_times_kept_as_written(self) -> None:
        payload = {
            "shows": [
                {"venue": "Joe's Bar", "day": "friday", "startTime": "21:00", "endTime": "02:00"}
            ]
        }
        show = parse_candidate_payload(payload, _UNIT).shows[0]
        assert show.start_time == "21:00"
        assert show.end_time == "02:00"

    def test_source_is_always_the_unit_url(self) -> None:
        payload = {"shows": [{"venue": "Joe's Bar", "source": "https://made-up.example/"}]}
        show = parse_candidate_payload(payload, _UNIT).shows[0]
        assert show.source == _UNIT.url

    def test_invalid_entries_dropped_individually(self) -> None:
        payload = {
            "djs": [{"name": ""}, {"name": "KJ Mike"}],
            "shows": [{"venue": None}, "not an object", {"venue": "Joe's Bar"}],
        }
        record = parse_candidate_payload(payload, _UNIT)
        assert [d.name for d in record.djs] == ["KJ Mike"]
        assert [s.venue for s in record.shows] == ["Joe's Bar"]

    def test_lenient_field_coercion(self) -> None:
        payload = {
            "shows": [
                {"venue": "Joe's Bar", "zip": 78701, "lat": "30.27", "confidence": 85},
            ]
        }
        show = parse_candidate_payload(payload, _UNIT).shows[0]
        assert show.zip == "78701"
        assert show.lat == pytest.approx(30.27)
        assert show.confidence == pytest.approx(0.85)

    def test_no_karaoke_content_is_empty(self) -> None:
        record = parse_candidate_payload({"vendor": None, "djs": [], "shows": []}, _UNIT)
        assert record.status is UnitStatus.EMPTY
        assert record.is_empty

    def test_unexpected_shape_is_malformed(self) -> None:
        with pytest.raises(MalformedModelOutputError):
            parse_candidate_payload({"answer": "I could not find anything"}, _UNIT)
