"""Abstract base class for the post-approval persistence layer.

On approval the review gateway maps the aggregated result onto vendor,
DJ, venue and show entities and writes them through this interface.
Every method is find-or-create: calling it twice with the same identity
returns the existing id instead of inserting a duplicate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: SQLiteEntityStore (src/providers/entity_store/)
class IEntityStore(ABC):
    """Contract for committing approved karaoke data."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist."""

    @abstractmethod
    async def upsert_vendor(
        self,
        name: str,
        website: str | None = None,
        description: str | None = None,
    ) -> str:
        """Find a vendor by normalized name or create it; return its id."""

    @abstractmethod
    async def upsert_dj(self, name: str, vendor_id: str | None = None) -> str:
        """Find a DJ by normalized name within *vendor_id* or create it."""

    @abstractmethod
    async def upsert_venue(
        self,
        name: str,
        address: str | None = None,
        city: str | None = None,
        state: str | None = None,
        zip_code: str | None = None,
        lat: float | None = None,
        lng: float | None = None,
        phone: str | None = None,
        website: str | None = None,
    ) -> str:
        """Find a venue by normalized name + city or create it."""

    @abstractmethod
    async def upsert_show(
        self,
        venue_id: str,
        day: str | None,
        start_time: str | None,
        end_time: str | None = None,
        description: str | None = None,
        source: str | None = None,
        vendor_id: str | None = None,
        dj_id: str | None = None,
    ) -> str:
        """Find a show by venue + day + start time or create it."""

    @abstractmethod
    async def count_shows(self) -> int:
        """Return the number of committed shows."""
