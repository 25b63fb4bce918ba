"""Content discovery models: what gets fetched and handed to the model.

A :class:`ContentUnit` is one page or one image queued for AI extraction.
Units are produced by the discovery service and are immutable once
created; workers only read them.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

_CHARSET_RE = re.compile(r"charset=([\w-]+)", re.IGNORECASE)


class ContentKind(str, Enum):  # noqa: UP042
    HTML = "html"
    IMAGE = "image"


class SizeHint(str, Enum):  # noqa: UP042
    """Resolution class of an image unit, as inferred from its CDN URL."""

    THUMBNAIL = "thumbnail"
    FULL_SIZE = "full_size"
    UNKNOWN = "unknown"


class DiscoveryMode(str, Enum):  # noqa: UP042
    """How a seed URL is expanded into content units.

    ``AUTO`` picks ``SOCIAL`` for facebook.com hosts and ``WEBSITE`` otherwise.
    """

    WEBSITE = "website"
    SOCIAL = "social"
    AUTO = "auto"


class ContentUnit(BaseModel):
    """One fetchable item to analyze.

    ``fallback_url`` holds the URL exactly as discovered when ``url`` is an
    upgraded full-size variant, so the worker can retry with the original
    if the upgraded link does not resolve.  ``index`` is the discovery
    order and is what "earliest seen" means during aggregation.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    kind: ContentKind
    size_hint: SizeHint = SizeHint.UNKNOWN
    fallback_url: str | None = None
    index: int = 0


class ClassifiedUrl(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_thumbnail: bool
    upgraded_url: str


class DiscoveryOptions(BaseModel):
    """Per-run discovery knobs.

    ``max_depth`` counts link hops from the seed page: 0 analyses the
    seed only, 1 (the default) adds the pages it links to.
    """

    model_config = ConfigDict(frozen=True)

    mode: DiscoveryMode = DiscoveryMode.AUTO
    max_depth: int = Field(default=1, ge=0, le=3)
    include_subdomains: bool = False
    max_units: int = Field(default=50, ge=1)


class FetchedContent(BaseModel):
    """Raw bytes returned by the fetcher, already decompressed."""

    model_config = ConfigDict(frozen=True)

    url: str
    content: bytes
    content_type: str = ""
    status_code: int = 200

    @property
    def media_type(self) -> str:
        return self.content_type.split(";", 1)[0].strip().lower()

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @property
    def is_html(self) -> bool:
        return self.media_type in ("text/html", "application/xhtml+xml") or (
            not self.media_type and self.content.lstrip()[:1] == b"<"
        )

    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        match = _CHARSET_RE.search(self.content_type)
        encoding = match.group(1) if match else "utf-8"
        try:
            return self.content.decode(encoding, errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")
