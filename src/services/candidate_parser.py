"""Validate a model's JSON payload into a :class:`CandidateRecord`.

The payload has already been parsed into an untyped dict by
:func:`src.utils.json_extraction.extract_json_object`.  This module
coerces it onto the record shape:

* ``vendor`` may arrive as an object or as a ``vendors`` list (the
  highest-confidence entry wins)
* ``kjs`` is accepted as an alias for ``djs``; bare strings become names
* a free-text ``time`` ("8pm-12am") fills missing ``startTime``/``endTime``
* days and times are normalized ("Fri" -> friday, "8pm" -> 20:00)
* every show's ``source`` is stamped with the unit URL

Entries that fail validation are dropped individually with a warning; a
payload with none of the expected keys is rejected as malformed.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from src.models.content import ContentUnit
from src.models.extraction import (
    CandidateDJ,
    CandidateRecord,
    CandidateShow,
    CandidateVendor,
    UnitStatus,
)
from src.utils.errors import MalformedModelOutputError
from src.utils.text_normalizer import normalize_day, normalize_time, parse_time_range

logger = structlog.get_logger(logger_name=__name__)

_KNOWN_KEYS = ("vendor", "vendors", "djs", "kjs", "shows")


def _as_list(value: Any, field: str, unit_url: str) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    logger.warning("candidate_field_ignored", field=field, unit_url=unit_url, type=type(value).__name__)
    return []


def _pick_vendor(payload: dict[str, Any], unit_url: str) -> CandidateVendor | None:
    raw_vendors = _as_list(payload.get("vendor"), "vendor", unit_url)
    raw_vendors += _as_list(payload.get("vendors"), "vendors", unit_url)
    vendors: list[CandidateVendor] = []
    for raw in raw_vendors:
        if isinstance(raw, str):
            raw = {"name": raw}
        try:
            vendors.append(CandidateVendor.model_validate(raw))
        except ValidationError as exc:
            logger.warning("candidate_vendor_dropped", unit_url=unit_url, error=exc.errors()[0]["msg"])
    if not vendors:
        return None
    return max(vendors, key=lambda v: (v.confidence, v.name))


def _parse_djs(payload: dict[str, Any], unit_url: str) -> list[CandidateDJ]:
    raw_djs = _as_list(payload.get("djs"), "djs", unit_url)
    raw_djs += _as_list(payload.get("kjs"), "kjs", unit_url)
    djs: list[CandidateDJ] = []
    for raw in raw_djs:
        if isinstance(raw, str):
            raw = {"name": raw}
        try:
            djs.append(CandidateDJ.model_validate(raw))
        except ValidationError as exc:
            logger.warning("candidate_dj_dropped", unit_url=unit_url, error=exc.errors()[0]["msg"])
    return djs


def _normalize_show_fields(raw: dict[str, Any]) -> dict[str, Any]:
    data = dict(raw)
    start = data.get("startTime", data.get("start_time"))
    end = data.get("endTime", data.get("end_time"))
    if not start and data.get("time"):
        parsed_start, parsed_end = parse_time_range(str(data["time"]))
        start = parsed_start
        end = end or parsed_end
    for alias in ("startTime", "endTime", "start_time", "end_time"):
        data.pop(alias, None)
    if start:
        data["start_time"] = normalize_time(str(start)) or str(start)
    if end:
        data["end_time"] = normalize_time(str(end)) or str(end)
    if data.get("day"):
        data["day"] = normalize_day(str(data["day"])) or data["day"]
    return data


def _parse_shows(payload: dict[str, Any], unit_url: str) -> list[CandidateShow]:
    shows: list[CandidateShow] = []
    for raw in _as_list(payload.get("shows"), "shows", unit_url):
        if not isinstance(raw, dict):
            logger.warning("candidate_show_dropped", unit_url=unit_url, error="not an object")
            continue
        try:
            show = CandidateShow.model_validate(_normalize_show_fields(raw))
        except ValidationError as exc:
            logger.warning("candidate_show_dropped", unit_url=unit_url, error=exc.errors()[0]["msg"])
            continue
        # Provenance is the unit, whatever the model claimed.
        shows.append(show.model_copy(update={"source": unit_url}))
    return shows


def parse_candidate_payload(payload: dict[str, Any], unit: ContentUnit) -> CandidateRecord:
    """Coerce an untyped model payload into a record for *unit*.

    Raises
    ------
    MalformedModelOutputError
        If *payload* contains none of the expected top-level keys.
    """
    if not any(key in payload for key in _KNOWN_KEYS):
        raise MalformedModelOutputError(
            f"Model payload has none of {', '.join(_KNOWN_KEYS)} (keys: {sorted(payload)[:8]})"
        )

    record = CandidateRecord(
        unit_url=unit.url,
        unit_index=unit.index,
        vendor=_pick_vendor(payload, unit.url),
        djs=_parse_djs(payload, unit.url),
        shows=_parse_shows(payload, unit.url),
    )
    if record.is_empty:
        return record.model_copy(update={"status": UnitStatus.EMPTY})
    return record
