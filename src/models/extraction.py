"""Per-unit extraction models: one worker's structured guess.

Field names are snake_case in Python and camelCase on the wire (the
model is prompted for ``startTime``, ``djName`` and so on); both spellings
are accepted on input.  Validators are lenient: confidences are clamped
into 0..1, blank strings become None and numeric strings are coerced,
so minor model sloppiness does not discard an otherwise usable record.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.5
    if 1.0 < number <= 100.0:
        # Some replies use percentages.
        number = number / 100.0
    return max(0.0, min(1.0, number))


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or stripped.lower() in ("null", "none", "n/a", "unknown"):
            return None
        return stripped
    return value


def _required_text(value: Any) -> Any:
    cleaned = _blank_to_none(value)
    if cleaned is None:
        raise ValueError("a non-empty name is required")
    return cleaned


def _coordinate(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]
RequiredText = Annotated[str, BeforeValidator(_required_text)]
Confidence = Annotated[float, BeforeValidator(_clamp_confidence)]
Coordinate = Annotated[float | None, BeforeValidator(_coordinate)]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CandidateVendor(_WireModel):
    name: RequiredText
    website: OptionalText = None
    description: OptionalText = None
    city: OptionalText = None
    state: OptionalText = None
    confidence: Confidence = 0.5


class CandidateDJ(_WireModel):
    name: RequiredText
    confidence: Confidence = 0.5
    context: str = ""
    aliases: list[str] = Field(default_factory=list)

    @field_validator("context", mode="before")
    @classmethod
    def _context_text(cls, value: Any) -> str:
        return _blank_to_none(value) or ""

    @field_validator("aliases", mode="before")
    @classmethod
    def _alias_list(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(v).strip() for v in value if str(v).strip()]


class CandidateShow(_WireModel):
    """A single show as extracted from one unit.

    ``source`` is always the URL of the unit the show was extracted from;
    the worker stamps it after validation regardless of what the model said.
    """

    venue: RequiredText
    address: OptionalText = None
    city: OptionalText = None
    state: OptionalText = None
    zip: OptionalText = None
    lat: Coordinate = None
    lng: Coordinate = None
    day: OptionalText = None
    time: OptionalText = None
    start_time: OptionalText = None
    end_time: OptionalText = None
    dj_name: OptionalText = None
    vendor_name: OptionalText = None
    description: OptionalText = None
    venue_phone: OptionalText = None
    venue_website: OptionalText = None
    source: str = ""
    confidence: Confidence = 0.5


class UnitStatus(str, Enum):  # noqa: UP042
    """Outcome of processing one content unit."""

    OK = "ok"
    EMPTY = "empty"          # analysed fine, nothing karaoke-related found
    FAILED = "failed"        # fetch or model failure, or malformed output
    TIMEOUT = "timeout"      # abandoned after the per-unit time bound
    CANCELLED = "cancelled"  # run was cancelled before the unit finished


class CandidateRecord(_WireModel):
    """One worker's result for one unit.

    Failed units still produce a record (with no entities) so the pool
    always returns exactly one record per unit.
    """

    unit_url: str
    unit_index: int = 0
    vendor: CandidateVendor | None = None
    djs: list[CandidateDJ] = Field(default_factory=list)
    shows: list[CandidateShow] = Field(default_factory=list)
    status: UnitStatus = UnitStatus.OK
    error: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.vendor is None and not self.djs and not self.shows

    @classmethod
    def empty(
        cls,
        unit_url: str,
        unit_index: int = 0,
        status: UnitStatus = UnitStatus.EMPTY,
        error: str | None = None,
    ) -> CandidateRecord:
        return cls(unit_url=unit_url, unit_index=unit_index, status=status, error=error)
