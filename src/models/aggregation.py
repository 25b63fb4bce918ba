"""Deduplicated, provenance-tagged result of one parsing run.

Entity ids are deterministic hashes of the normalized identity key, so
the same input set always yields the same ids regardless of the order
records arrived in.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ResultModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Vendor(_ResultModel):
    id: str
    name: str
    website: str | None = None
    description: str | None = None
    city: str | None = None
    state: str | None = None
    confidence: float = 0.5
    sources: list[str] = Field(default_factory=list)


class DJ(_ResultModel):
    id: str
    name: str
    confidence: float = 0.5
    context: str = ""
    aliases: list[str] = Field(default_factory=list)
    city: str | None = None
    state: str | None = None
    sources: list[str] = Field(default_factory=list)


class Show(_ResultModel):
    """A deduplicated show.

    ``vendor_id``/``dj_id`` reference entries of the same
    :class:`AggregatedResult` and stay None when the free-text name could
    not be resolved.  ``source`` is the URL of the earliest-seen unit that
    described this show.
    """

    id: str
    venue: str
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    lat: float | None = None
    lng: float | None = None
    day: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    description: str | None = None
    venue_phone: str | None = None
    venue_website: str | None = None
    dj_name: str | None = None
    vendor_name: str | None = None
    dj_id: str | None = None
    vendor_id: str | None = None
    source: str
    confidence: float = 0.5


class AggregatedResult(_ResultModel):
    vendors: list[Vendor] = Field(default_factory=list)
    djs: list[DJ] = Field(default_factory=list)
    shows: list[Show] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.vendors or self.djs or self.shows)

    def select_shows(self, show_ids: list[str]) -> AggregatedResult:
        """Return a copy holding only *show_ids* and the entities they reference."""
        wanted = set(show_ids)
        shows = [s for s in self.shows if s.id in wanted]
        vendor_ids = {s.vendor_id for s in shows if s.vendor_id}
        dj_ids = {s.dj_id for s in shows if s.dj_id}
        return AggregatedResult(
            vendors=[v for v in self.vendors if v.id in vendor_ids],
            djs=[d for d in self.djs if d.id in dj_ids],
            shows=shows,
        )
