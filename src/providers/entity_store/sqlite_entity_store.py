"""SQLite-backed persistence for approved vendors, DJs, venues and shows.

Stands in for the application's relational database at its interface
boundary.  Every write is find-or-create keyed on a normalized identity
column with a UNIQUE constraint, so approving overlapping schedules
never duplicates an entity:

    vendors  -- name_key
    djs      -- (name_key, vendor_id)
    venues   -- (name_key, city_key)
    shows    -- (venue_id, day, start_time)

Layer: Providers (implements IEntityStore)
Depends on: aiosqlite, structlog
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.entity_store import IEntityStore
from src.utils.text_normalizer import normalize_name

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/entities.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS vendors (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    name_key     TEXT NOT NULL UNIQUE,
    website      TEXT,
    description  TEXT,
    created_at   TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS djs (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    name_key    TEXT NOT NULL,
    vendor_id   TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL,
    UNIQUE (name_key, vendor_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS venues (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    name_key    TEXT NOT NULL,
    city_key    TEXT NOT NULL DEFAULT '',
    address     TEXT,
    city        TEXT,
    state       TEXT,
    zip         TEXT,
    lat         REAL,
    lng         REAL,
    phone       TEXT,
    website     TEXT,
    created_at  TEXT NOT NULL,
    UNIQUE (name_key, city_key)
);
""",
    """\
CREATE TABLE IF NOT EXISTS shows (
    id           TEXT PRIMARY KEY,
    venue_id     TEXT NOT NULL REFERENCES venues(id),
    day          TEXT NOT NULL DEFAULT '',
    start_time   TEXT NOT NULL DEFAULT '',
    end_time     TEXT,
    description  TEXT,
    source       TEXT,
    vendor_id    TEXT REFERENCES vendors(id),
    dj_id        TEXT REFERENCES djs(id),
    created_at   TEXT NOT NULL,
    UNIQUE (venue_id, day, start_time)
);
""",
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()  # noqa: UP017


class SQLiteEntityStore(IEntityStore):
    """SQLite implementation of the committed-entity store."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for sql in _CREATE_TABLES_SQL:
                await db.execute(sql)
            await db.commit()
        logger.info("entity_db_initialized", path=str(self._db_path))

    async def _find_or_insert(
        self,
        select_sql: str,
        select_params: tuple,
        insert_sql: str,
        insert_params: tuple,
    ) -> tuple[str, bool]:
        """Return ``(id, created)``; INSERT OR IGNORE then SELECT keeps it race-free."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(insert_sql, insert_params)
            created = cursor.rowcount > 0
            await db.commit()
            cursor = await db.execute(select_sql, select_params)
            row = await cursor.fetchone()
        return row[0], created

    async def upsert_vendor(
        self,
        name: str,
        website: str | None = None,
        description: str | None = None,
    ) -> str:
        key = normalize_name(name)
        vendor_id, created = await self._find_or_insert(
            "SELECT id FROM vendors WHERE name_key = ?",
            (key,),
            "INSERT OR IGNORE INTO vendors (id, name, name_key, website, description, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (str(uuid.uuid4()), name, key, website, description, _now()),
        )
        if created:
            logger.info("vendor_created", vendor_id=vendor_id, name=name)
        return vendor_id

    async def upsert_dj(self, name: str, vendor_id: str | None = None) -> str:
        key = normalize_name(name, strip_role_prefix=True)
        dj_id, created = await self._find_or_insert(
            "SELECT id FROM djs WHERE name_key = ? AND vendor_id = ?",
            (key, vendor_id or ""),
            "INSERT OR IGNORE INTO djs (id, name, name_key, vendor_id, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (str(uuid.uuid4()), name, key, vendor_id or "", _now()),
        )
        if created:
            logger.info("dj_created", dj_id=dj_id, name=name, vendor_id=vendor_id)
        return dj_id

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
        key = normalize_name(name)
        city_key = normalize_name(city)
        venue_id, created = await self._find_or_insert(
            "SELECT id FROM venues WHERE name_key = ? AND city_key = ?",
            (key, city_key),
            "INSERT OR IGNORE INTO venues "
            "(id, name, name_key, city_key, address, city, state, zip, lat, lng, "
            "phone, website, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                name,
                key,
                city_key,
                address,
                city,
                state,
                zip_code,
                lat,
                lng,
                phone,
                website,
                _now(),
            ),
        )
        if created:
            logger.info("venue_created", venue_id=venue_id, name=name, city=city)
        return venue_id

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
        show_id, created = await self._find_or_insert(
            "SELECT id FROM shows WHERE venue_id = ? AND day = ? AND start_time = ?",
            (venue_id, day or "", start_time or ""),
            "INSERT OR IGNORE INTO shows "
            "(id, venue_id, day, start_time, end_time, description, source, "
            "vendor_id, dj_id, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                venue_id,
                day or "",
                start_time or "",
                end_time,
                description,
                source,
                vendor_id,
                dj_id,
                _now(),
            ),
        )
        if created:
            logger.info("show_created", show_id=show_id, venue_id=venue_id, day=day)
        return show_id

    async def count_shows(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM shows")
            row = await cursor.fetchone()
        return int(row[0])
