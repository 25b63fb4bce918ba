"""Merge per-unit candidate records into one deduplicated result.

# --- ALGORITHM --------------------------------------------------------
#
#   1. Validate: dict inputs are validated into CandidateRecords; invalid
#      ones are dropped with a warning.
#   2. Canonicalize: records are sorted by (unit_index, unit_url, content)
#      so every later step sees the same sequence whatever order the
#      workers finished in.
#   3. Vendors / DJs: two entries are one entity when their normalized
#      names are equal, OR their names are similar (rapidfuzz
#      token_sort_ratio >= threshold) AND they share a locale (city+state
#      taken from the entry itself or from shows in the same record) or a
#      website domain.  The cluster's representative is the entry with
#      the highest confidence, then the most non-null fields; its empty
#      fields are filled from the other members.
#   4. Shows: duplicates share normalized venue + weekday + start time.
#      Each field takes the highest-confidence non-null value; ``source``
#      is the URL of the earliest-seen unit (lowest unit_index) and is
#      never replaced by a later one.
#   5. Cross-references: a show's vendorName / djName resolve to the
#      deduplicated entity through normalized-name lookup (names and
#      aliases of every cluster member).  Unresolved names leave the id
#      None.  A show without a vendorName inherits the vendor named by
#      its own record.
#
# Entity ids hash the normalized identity, so equal inputs give equal ids.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from src.models.aggregation import DJ, AggregatedResult, Show, Vendor
from src.models.extraction import CandidateDJ, CandidateRecord, CandidateShow, CandidateVendor
from src.utils.text_normalizer import (
    WEEKDAYS,
    name_similarity,
    normalize_day,
    normalize_name,
    normalize_time,
    website_domain,
)

logger = structlog.get_logger(logger_name=__name__)

Locale = tuple[str, str]


def _stable_id(prefix: str, *parts: str | None) -> str:
    digest = hashlib.sha1("|".join(p or "" for p in parts).encode("utf-8")).hexdigest()
    return f"{prefix}-{digest[:12]}"


def _locale(city: str | None, state: str | None) -> Locale | None:
    city_key = normalize_name(city)
    if not city_key:
        return None
    return city_key, normalize_name(state)


def _locales_overlap(left: set[Locale], right: set[Locale]) -> bool:
    for city_a, state_a in left:
        for city_b, state_b in right:
            if city_a == city_b and (state_a == state_b or not state_a or not state_b):
                return True
    return False


def _completeness(model: Any) -> int:
    return sum(
        1
        for value in model.model_dump().values()
        if value not in (None, "", [], {})
    )


@dataclass
class _Member:
    """One vendor or DJ sighting with the context used for matching."""

    entity: CandidateVendor | CandidateDJ
    unit_index: int
    unit_url: str
    locales: set[Locale] = field(default_factory=set)
    domain: str = ""

    def sort_key(self) -> tuple:
        return (
            -self.entity.confidence,
            -_completeness(self.entity),
            normalize_name(self.entity.name),
            self.entity.name,
            self.unit_index,
            self.unit_url,
        )


class _UnionFind:
    def __init__(self, size: int) -> None:
        self._parent = list(range(size))

    def find(self, item: int) -> int:
        while self._parent[item] != item:
            self._parent[item] = self._parent[self._parent[item]]
            item = self._parent[item]
        return item

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Smaller index becomes root so the result is order-stable.
            self._parent[max(root_a, root_b)] = min(root_a, root_b)


class Aggregator:
    """Deduplicates vendors, DJs and shows across candidate records.

    Parameters
    ----------
    similarity_threshold:
        Minimum 0..1 name similarity for a fuzzy (corroborated) match.
    """

    def __init__(self, similarity_threshold: float = 0.85) -> None:
        self._threshold = similarity_threshold

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def aggregate(self, records: Iterable[CandidateRecord | dict]) -> AggregatedResult:
        valid = self._canonical(self._validate(records))

        vendor_members = self._vendor_members(valid)
        dj_members = self._dj_members(valid)
        vendor_clusters = self._cluster(vendor_members, strip_role_prefix=False)
        dj_clusters = self._cluster(dj_members, strip_role_prefix=True)

        vendors, vendor_lookup = self._merge_vendors(vendor_clusters)
        djs, dj_lookup = self._merge_djs(dj_clusters)
        shows = self._merge_shows(valid, vendor_lookup, dj_lookup)

        result = AggregatedResult(
            vendors=sorted(vendors, key=lambda v: (normalize_name(v.name), v.id)),
            djs=sorted(djs, key=lambda d: (normalize_name(d.name, True), d.id)),
            shows=sorted(shows, key=self._show_sort_key),
        )
        logger.info(
            "aggregation_complete",
            records=len(valid),
            vendors=len(result.vendors),
            djs=len(result.djs),
            shows=len(result.shows),
        )
        return result

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(records: Iterable[CandidateRecord | dict]) -> list[CandidateRecord]:
        valid: list[CandidateRecord] = []
        for raw in records:
            if isinstance(raw, CandidateRecord):
                valid.append(raw)
                continue
            try:
                valid.append(CandidateRecord.model_validate(raw))
            except ValidationError as exc:
                logger.warning(
                    "candidate_record_dropped",
                    error=exc.errors()[0]["msg"],
                    unit_url=raw.get("unitUrl") if isinstance(raw, dict) else None,
                )
        return valid

    @staticmethod
    def _canonical(records: list[CandidateRecord]) -> list[CandidateRecord]:
        stamped: list[CandidateRecord] = []
        for record in records:
            if any(not show.source for show in record.shows):
                record = record.model_copy(
                    update={
                        "shows": [
                            s if s.source else s.model_copy(update={"source": record.unit_url})
                            for s in record.shows
                        ]
                    }
                )
            stamped.append(record)
        return sorted(
            stamped,
            key=lambda r: (r.unit_index, r.unit_url, r.model_dump_json()),
        )

    @staticmethod
    def _record_locales(record: CandidateRecord) -> set[Locale]:
        locales = {_locale(s.city, s.state) for s in record.shows}
        if record.vendor is not None:
            locales.add(_locale(record.vendor.city, record.vendor.state))
        locales.discard(None)
        return locales  # type: ignore[return-value]

    def _vendor_members(self, records: list[CandidateRecord]) -> list[_Member]:
        members: list[_Member] = []
        for record in records:
            if record.vendor is None:
                continue
            members.append(
                _Member(
                    entity=record.vendor,
                    unit_index=record.unit_index,
                    unit_url=record.unit_url,
                    locales=self._record_locales(record),
                    domain=website_domain(record.vendor.website),
                )
            )
        return members

    def _dj_members(self, records: list[CandidateRecord]) -> list[_Member]:
        members: list[_Member] = []
        for record in records:
            locales = self._record_locales(record)
            domain = website_domain(record.vendor.website) if record.vendor else ""
            for dj in record.djs:
                members.append(
                    _Member(
                        entity=dj,
                        unit_index=record.unit_index,
                        unit_url=record.unit_url,
                        locales=set(locales),
                        domain=domain,
                    )
                )
        return members

    # ------------------------------------------------------------------
    # Clustering
    # ------------------------------------------------------------------

    def _same_entity(self, a: _Member, b: _Member, strip_role_prefix: bool) -> bool:
        key_a = normalize_name(a.entity.name, strip_role_prefix)
        key_b = normalize_name(b.entity.name, strip_role_prefix)
        if key_a and key_a == key_b:
            return True
        if name_similarity(a.entity.name, b.entity.name, strip_role_prefix) < self._threshold:
            return False
        if _locales_overlap(a.locales, b.locales):
            return True
        return bool(a.domain) and a.domain == b.domain

    def _cluster(self, members: list[_Member], strip_role_prefix: bool) -> list[list[_Member]]:
        union = _UnionFind(len(members))
        for i in range(len(members)):
            for j in range(i + 1, len(members)):
                if self._same_entity(members[i], members[j], strip_role_prefix):
                    union.union(i, j)

        groups: dict[int, list[_Member]] = {}
        for idx, member in enumerate(members):
            groups.setdefault(union.find(idx), []).append(member)
        return [sorted(group, key=_Member.sort_key) for group in groups.values()]

    @staticmethod
    def _fill(winner: dict[str, Any], others: list[dict[str, Any]], fields: Iterable[str]) -> None:
        for name in fields:
            if winner.get(name) not in (None, ""):
                continue
            for other in others:
                if other.get(name) not in (None, ""):
                    winner[name] = other[name]
                    break

    def _merge_vendors(
        self, clusters: list[list[_Member]]
    ) -> tuple[list[Vendor], dict[str, str]]:
        vendors: list[Vendor] = []
        lookup: dict[str, str] = {}
        for cluster in clusters:
            dumps = [m.entity.model_dump() for m in cluster]
            merged = dict(dumps[0])
            self._fill(merged, dumps[1:], ("website", "description", "city", "state"))
            vendor_id = _stable_id("vendor", normalize_name(merged["name"]))
            vendors.append(
                Vendor(
                    id=vendor_id,
                    name=merged["name"],
                    website=merged["website"],
                    description=merged["description"],
                    city=merged["city"],
                    state=merged["state"],
                    confidence=max(m.entity.confidence for m in cluster),
                    sources=sorted({m.unit_url for m in cluster}),
                )
            )
            for member in cluster:
                lookup.setdefault(normalize_name(member.entity.name), vendor_id)
        return vendors, lookup

    def _merge_djs(self, clusters: list[list[_Member]]) -> tuple[list[DJ], dict[str, str]]:
        djs: list[DJ] = []
        lookup: dict[str, str] = {}
        for cluster in clusters:
            winner: CandidateDJ = cluster[0].entity  # type: ignore[assignment]
            winner_key = normalize_name(winner.name, strip_role_prefix=True)
            dj_id = _stable_id("dj", winner_key)

            names = {m.entity.name for m in cluster}
            for member in cluster:
                names.update(member.entity.aliases)  # type: ignore[union-attr]
            aliases = sorted(n for n in names if n != winner.name)

            context = winner.context or next(
                (m.entity.context for m in cluster if m.entity.context), ""  # type: ignore[union-attr]
            )
            locales = sorted(set().union(*(m.locales for m in cluster)))
            city, state = (None, None)
            if len(locales) == 1:
                city, state = self._display_locale(cluster, locales[0])

            djs.append(
                DJ(
                    id=dj_id,
                    name=winner.name,
                    confidence=max(m.entity.confidence for m in cluster),
                    context=context,
                    aliases=aliases,
                    city=city,
                    state=state,
                    sources=sorted({m.unit_url for m in cluster}),
                )
            )
            for name in names:
                lookup.setdefault(normalize_name(name, strip_role_prefix=True), dj_id)
        return djs, lookup

    @staticmethod
    def _display_locale(cluster: list[_Member], locale: Locale) -> tuple[str | None, str | None]:
        # Locales are keys; recover a readable city/state from the shows seen.
        for member in cluster:
            entity = member.entity
            city = getattr(entity, "city", None)
            if city and normalize_name(city) == locale[0]:
                return city, getattr(entity, "state", None)
        return locale[0].title(), locale[1].upper() or None

    # ------------------------------------------------------------------
    # Shows
    # ------------------------------------------------------------------

    @staticmethod
    def _show_key(show: CandidateShow) -> tuple[str, str, str]:
        day = normalize_day(show.day) or normalize_name(show.day)
        start = normalize_time(show.start_time) or (show.start_time or "")
        return normalize_name(show.venue), day, start

    @staticmethod
    def _show_sort_key(show: Show) -> tuple:
        day_rank = WEEKDAYS.index(show.day) if show.day in WEEKDAYS else len(WEEKDAYS)
        return (normalize_name(show.venue), day_rank, show.start_time or "", show.id)

    def _merge_shows(
        self,
        records: list[CandidateRecord],
        vendor_lookup: dict[str, str],
        dj_lookup: dict[str, str],
    ) -> list[Show]:
        groups: dict[tuple[str, str, str], list[tuple[int, str, CandidateShow]]] = {}
        for record in records:
            record_vendor = record.vendor.name if record.vendor else None
            for show in record.shows:
                if show.vendor_name is None and record_vendor:
                    show = show.model_copy(update={"vendor_name": record_vendor})
                groups.setdefault(self._show_key(show), []).append(
                    (record.unit_index, record.unit_url, show)
                )

        shows: list[Show] = []
        for key, sightings in groups.items():
            # Earliest-seen first; within a unit, higher confidence first.
            sightings.sort(key=lambda s: (s[0], s[1], -s[2].confidence, s[2].model_dump_json()))
            earliest = sightings[0][2]
            by_confidence = sorted(
                (s[2] for s in sightings),
                key=lambda s: -s.confidence,
            )
            pick = self._picker(by_confidence)

            venue_key, day, start = key
            vendor_name = pick(lambda s: s.vendor_name)
            dj_name = pick(lambda s: s.dj_name)
            shows.append(
                Show(
                    id=_stable_id("show", venue_key, day, start),
                    venue=pick(lambda s: s.venue),
                    address=pick(lambda s: s.address),
                    city=pick(lambda s: s.city),
                    state=pick(lambda s: s.state),
                    zip=pick(lambda s: s.zip),
                    lat=pick(lambda s: s.lat),
                    lng=pick(lambda s: s.lng),
                    day=normalize_day(earliest.day) or pick(lambda s: s.day),
                    start_time=normalize_time(pick(lambda s: s.start_time)) or pick(
                        lambda s: s.start_time
                    ),
                    end_time=normalize_time(pick(lambda s: s.end_time)) or pick(
                        lambda s: s.end_time
                    ),
                    description=pick(lambda s: s.description),
                    venue_phone=pick(lambda s: s.venue_phone),
                    venue_website=pick(lambda s: s.venue_website),
                    dj_name=dj_name,
                    vendor_name=vendor_name,
                    dj_id=self._resolve(dj_lookup, by_confidence, lambda s: s.dj_name, True),
                    vendor_id=self._resolve(
                        vendor_lookup, by_confidence, lambda s: s.vendor_name, False
                    ),
                    source=earliest.source,
                    confidence=by_confidence[0].confidence,
                )
            )
        return shows

    @staticmethod
    def _picker(ordered: list[CandidateShow]) -> Callable[[Callable[[CandidateShow], Any]], Any]:
        def pick(getter: Callable[[CandidateShow], Any]) -> Any:
            for show in ordered:
                value = getter(show)
                if value not in (None, ""):
                    return value
            return None

        return pick

    @staticmethod
    def _resolve(
        lookup: dict[str, str],
        ordered: list[CandidateShow],
        getter: Callable[[CandidateShow], str | None],
        strip_role_prefix: bool,
    ) -> str | None:
        for show in ordered:
            name = getter(show)
            if not name:
                continue
            entity_id = lookup.get(normalize_name(name, strip_role_prefix))
            if entity_id is not None:
                return entity_id
        return None
