"""Text normalization utilities for venue, DJ and vendor names, days and times.

This module handles three normalization concerns used by the aggregator:

1. **Name normalization** -- lowercases, drops apostrophes and
   punctuation, a leading "the" and DJ/KJ prefixes so "Joe's Bar",
   "Joes Bar" and "JOES BAR!" compare equal.  Fuzzy comparison goes
   through rapidfuzz so near-misses ("Joe's Sports Bar" / "Joes Sports
   Bar & Grill") can be scored.

2. **Day normalization** -- maps "Fri", "Fridays", "every friday night"
   onto the lowercase full weekday name.

3. **Time normalization** -- maps "8pm", "8:00 PM", "20:00" and ranges
   such as "8pm-12am" or "9 - close" onto 24-hour ``HH:MM`` strings.
"""

import re
from typing import NamedTuple
from urllib.parse import urlparse

from rapidfuzz import fuzz, process

_APOSTROPHES = re.compile(r"['‘’`]")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_LEADING_THE = re.compile(r"^the\s+")
_DJ_PREFIX = re.compile(r"^(?:dj|kj|vj|mc)\s+")


def normalize_name(name: str | None, strip_role_prefix: bool = False) -> str:
    """Normalize an entity name for equality comparison.

    Args:
        name: Raw name from model output.
        strip_role_prefix: Also drop a leading "DJ"/"KJ"/"VJ"/"MC" token,
            used for performer names.

    Returns:
        Lowercase, punctuation-free, single-spaced key; ``""`` for empty input.
    """
    if not name:
        return ""
    normalized = _APOSTROPHES.sub("", name.lower())
    normalized = normalized.replace("&", " and ")
    normalized = _NON_ALNUM.sub(" ", normalized).strip()
    normalized = _LEADING_THE.sub("", normalized)
    if strip_role_prefix:
        normalized = _DJ_PREFIX.sub("", normalized)
    return normalized


def name_similarity(a: str | None, b: str | None, strip_role_prefix: bool = False) -> float:
    """Return the token-sort similarity of two names on a 0.0--1.0 scale."""
    left = normalize_name(a, strip_role_prefix)
    right = normalize_name(b, strip_role_prefix)
    if not left or not right:
        return 0.0
    return fuzz.token_sort_ratio(left, right) / 100.0


def fuzzy_match(
    query: str,
    candidates: list[str],
    threshold: float = 0.85,
) -> tuple[str, float] | None:
    """Find the best fuzzy match for *query* among *candidates*.

    Uses rapidfuzz ``token_sort_ratio`` over normalized names, which
    tolerates word-order differences ("Bar Joes" vs "Joes Bar").

    Returns:
        A ``(best_match, score)`` tuple if the score meets *threshold*, else None.
    """
    if not candidates:
        return None

    result = process.extractOne(
        query,
        candidates,
        scorer=fuzz.token_sort_ratio,
        processor=normalize_name,
        score_cutoff=threshold * 100,
    )
    if result is None:
        return None
    match, score, _index = result
    return match, score / 100.0


def website_domain(url: str | None) -> str:
    """Return the registrable-looking host of *url* without ``www.``; ``""`` if none."""
    if not url:
        return ""
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"http://{candidate}"
    host = (urlparse(candidate).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


# ---------------------------------------------------------------------------
# Days
# ---------------------------------------------------------------------------

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_DAY_PATTERN = re.compile(
    r"\b(mon|tue|tues|wed|weds|thu|thur|thurs|fri|sat|sun)"
    r"(?:day|nesday|sday|rsday|urday)?s?\b",
    re.IGNORECASE,
)


def normalize_day(day: str | None) -> str | None:
    """Return the lowercase full weekday named in *day*, or None."""
    if not day:
        return None
    match = _DAY_PATTERN.search(day)
    if not match:
        return None
    prefix = match.group(1).lower()[:3]
    for weekday in WEEKDAYS:
        if weekday.startswith(prefix):
            return weekday
    return None


# ---------------------------------------------------------------------------
# Times
# ---------------------------------------------------------------------------

_TIME_PATTERN = re.compile(
    r"(?P<hour>\d{1,2})(?:[:.](?P<minute>\d{2}))?\s*(?P<meridiem>[ap])?\.?\s*m?\.?",
    re.IGNORECASE,
)
_RANGE_SPLIT = re.compile(r"\s*(?:-|\u2013|\u2014|\bto\b|\buntil\b|\btil\b|\btill\b)\s*", re.IGNORECASE)
_WORD_TIMES = {"midnight": "00:00", "noon": "12:00"}


class _Clock(NamedTuple):
    hour: int
    minute: int
    meridiem: str | None
    bare: bool  # single unpadded hour, no minutes, no am/pm


def _parse_clock(text: str) -> _Clock | None:
    match = _TIME_PATTERN.search(text)
    if not match:
        return None
    hour_text = match.group("hour")
    hour = int(hour_text)
    minute = int(match.group("minute") or 0)
    meridiem = match.group("meridiem")
    if hour > 23 or minute > 59:
        return None
    bare = (
        meridiem is None
        and match.group("minute") is None
        and not hour_text.startswith("0")
    )
    return _Clock(hour, minute, meridiem.lower() if meridiem else None, bare)


def _to_24h(hour: int, minute: int, meridiem: str | None) -> str:
    if meridiem == "p" and hour < 12:
        hour += 12
    elif meridiem == "a" and hour == 12:
        hour = 0
    return f"{hour:02d}:{minute:02d}"


def normalize_time(value: str | None) -> str | None:
    """Normalize a single clock time to 24-hour ``HH:MM``.

    A bare hour in 1--11 (``"9"``) is read as an evening time, since
    karaoke nights do not start in the morning.  Anything written with
    minutes or a leading zero (``"02:00"``, ``"09"``) is taken as 24-hour.
    """
    if not value:
        return None
    text = value.strip().lower()
    for word, clock in _WORD_TIMES.items():
        if word in text:
            return clock
    parsed = _parse_clock(text)
    if parsed is None:
        return None
    meridiem = parsed.meridiem
    if parsed.bare and 1 <= parsed.hour <= 11:
        meridiem = "p"
    return _to_24h(parsed.hour, parsed.minute, meridiem)


def _end_after(start: str, end_clock: _Clock) -> str:
    """Resolve a bare end hour against a known 24-hour start.

    The evening reading wins when it falls after the start; otherwise the
    show runs past midnight (``"9pm-2"`` ends at 02:00).
    """
    start_hour = int(start[:2])
    evening = end_clock.hour + 12 if end_clock.hour < 12 else 12
    if evening > start_hour:
        return _to_24h(evening, end_clock.minute, None)
    return _to_24h(end_clock.hour % 12, end_clock.minute, None)


def parse_time_range(value: str | None) -> tuple[str | None, str | None]:
    """Split a free-text time range into normalized ``(start, end)``.

    ``"8pm-12am"`` -> ``("20:00", "00:00")``; ``"9 - close"`` ->
    ``("21:00", None)``; ``"8-11pm"`` borrows the end's meridiem for the
    start; ``"9pm-2"`` -> ``("21:00", "02:00")``.
    """
    if not value:
        return None, None
    parts = [p for p in _RANGE_SPLIT.split(value.strip(), maxsplit=1) if p]
    if not parts:
        return None, None
    start_text = parts[0]
    end_text = parts[1] if len(parts) > 1 else ""

    start_clock = _parse_clock(start_text.lower())
    end_clock = _parse_clock(end_text.lower())
    start = normalize_time(start_text)
    if (
        start_clock is not None
        and start_clock.meridiem is None
        and end_clock is not None
        and end_clock.meridiem is not None
        and start_clock.hour <= 12
    ):
        start = _to_24h(start_clock.hour, start_clock.minute, end_clock.meridiem)

    end = normalize_time(end_text)
    if start is not None and end_clock is not None and end_clock.bare:
        end = _end_after(start, end_clock)
    return start, end
