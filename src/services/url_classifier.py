"""Thumbnail detection and full-size upgrade for CDN media URLs.

Social-media CDNs encode the requested rendition in two places:

* a path segment such as ``/s130x130/`` or ``/p720x720/``
* an ``stp`` query parameter such as ``stp=dst-jpg_s130x130``

Both are checked.  The upgrade only ever *removes* the marker that is
present (path segment first, then the ``stp`` parameter); it never builds
a URL from scratch and never touches other parameters.  CDN links carry
signature parameters (``oh``, ``oe``) tied to the exact URL, so any other
rewrite invalidates them and the link 404s.  URLs with no marker are
returned byte-for-byte unchanged.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

from src.models.content import ClassifiedUrl, SizeHint

_SIZE_SEGMENT_RE = re.compile(r"^[sp]\d{2,5}x\d{2,5}$")
_SIZE_TOKEN_RE = re.compile(r"(?:^|[_.-])[sp]\d{2,5}x\d{2,5}(?:$|[_.-])")
_SIZING_PARAM = "stp"


def _is_sizing_param(part: str) -> bool:
    key, _, value = part.partition("=")
    return key == _SIZING_PARAM and bool(_SIZE_TOKEN_RE.search(value))


def classify(media_url: str) -> ClassifiedUrl:
    """Classify *media_url* and return its highest-resolution form.

    Never raises; anything unparseable is returned unchanged as a
    non-thumbnail.
    """
    try:
        parts = urlsplit(media_url)
    except ValueError:
        return ClassifiedUrl(is_thumbnail=False, upgraded_url=media_url)

    segments = parts.path.split("/")
    kept_segments = [s for s in segments if not _SIZE_SEGMENT_RE.match(s)]
    path_marker = len(kept_segments) != len(segments)

    query_parts = parts.query.split("&") if parts.query else []
    kept_query = [p for p in query_parts if p and not _is_sizing_param(p)]
    query_marker = any(_is_sizing_param(p) for p in query_parts)

    if not path_marker and not query_marker:
        return ClassifiedUrl(is_thumbnail=False, upgraded_url=media_url)

    upgraded = urlunsplit(
        (
            parts.scheme,
            parts.netloc,
            "/".join(kept_segments) if path_marker else parts.path,
            "&".join(kept_query) if query_marker else parts.query,
            parts.fragment,
        )
    )
    return ClassifiedUrl(is_thumbnail=True, upgraded_url=upgraded)


def size_hint_for(classified: ClassifiedUrl) -> SizeHint:
    """Size hint for a unit built from *classified*'s upgraded URL."""
    if classify(classified.upgraded_url).is_thumbnail:
        return SizeHint.THUMBNAIL
    if classified.is_thumbnail:
        return SizeHint.FULL_SIZE
    return SizeHint.UNKNOWN
