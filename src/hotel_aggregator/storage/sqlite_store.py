"""SQLite-backed persistence for canonical hotels, provider mappings and price snapshots."""
from __future__ import annotations

import asyncio
import json
import logging
import math
import sqlite3
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional, Sequence

from hotel_aggregator.hotels.models import (
    CanonicalHotel,
    PriceCacheEntry,
    PriceObservation,
    ProviderMapping,
    RawHotelResult,
)
from hotel_aggregator.matching.similarity import haversine_km, normalize_name

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
SCHEMA_VERSION = 2

VALID_JOURNAL_MODES = frozenset({"delete", "truncate", "persist", "memory", "wal", "off"})
VALID_SYNCHRONOUS_MODES = frozenset({"off", "normal", "full", "extra"})

_KM_PER_DEGREE_LAT = 111.32

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def _parse_ts(value: str) -> datetime:
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


def _json_dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


def _normalize_xref(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


class SqliteStore:
    """Thin async wrapper over sqlite3 for the aggregator's durable state."""

    def __init__(
        self,
        db_path: Path,
        *,
        busy_timeout_ms: int = 2000,
        journal_mode: str | None = "wal",
        synchronous: str | None = "normal",
    ) -> None:
        self._path = db_path
        self._busy_timeout_ms = busy_timeout_ms
        self._journal_mode = self._normalize_journal_mode(journal_mode)
        self._synchronous = self._normalize_synchronous(synchronous)
        self._connection: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # lifecycle

    async def initialize(self) -> None:
        if self._connection is not None:
            return
        async with self._lock:
            if self._connection is None:
                conn = await asyncio.to_thread(self._open_connection)
                self._connection = conn

    async def close(self) -> None:
        if self._connection is None:
            return
        conn = self._connection
        self._connection = None
        await asyncio.to_thread(conn.close)

    def _open_connection(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.execute(f"PRAGMA busy_timeout = {int(max(self._busy_timeout_ms, 0))};")
        if self._journal_mode:
            conn.execute(f"PRAGMA journal_mode = {self._journal_mode.upper()};")
        if self._synchronous:
            conn.execute(f"PRAGMA synchronous = {self._synchronous.upper()};")
        try:
            self._apply_migrations(conn)
        except sqlite3.OperationalError as exc:
            conn.close()
            logger.error(
                "SQLite migration failed (path=%s, timeout_ms=%s): %s",
                self._path,
                self._busy_timeout_ms,
                exc,
            )
            raise
        return conn

    @staticmethod
    def _normalize_journal_mode(value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if not mode:
            return None
        if mode not in VALID_JOURNAL_MODES:
            raise ValueError(
                f"Unsupported SQLite journal_mode '{value}'. Expected one of: {sorted(VALID_JOURNAL_MODES)}"
            )
        return mode

    @staticmethod
    def _normalize_synchronous(value: str | None) -> str | None:
        if value is None:
            return None
        mode = value.strip().lower()
        if not mode:
            return None
        if mode not in VALID_SYNCHRONOUS_MODES:
            raise ValueError(
                f"Unsupported SQLite synchronous mode '{value}'. Expected one of: {sorted(VALID_SYNCHRONOUS_MODES)}"
            )
        return mode

    def _apply_migrations(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        current = self._get_schema_version(conn)
        if current >= SCHEMA_VERSION:
            return
        for version in range(current + 1, SCHEMA_VERSION + 1):
            script = MIGRATIONS.get(version)
            if not script:
                raise RuntimeError(f"Missing migration script for version {version}")
            conn.executescript(script)
            conn.execute(
                "INSERT INTO meta(key, value) VALUES('schema_version', ?)\n"
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (str(version),),
            )
        conn.commit()

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        cursor = conn.execute("SELECT value FROM meta WHERE key='schema_version'")
        row = cursor.fetchone()
        if not row:
            return 0
        try:
            return int(row[0])
        except (TypeError, ValueError):
            return 0

    def _require_connection(self) -> sqlite3.Connection:
        if not self._connection:
            raise RuntimeError("SQLite store has not been initialised")
        return self._connection

    # ------------------------------------------------------------------
    # canonical hotels

    def _load_mappings(self, conn: sqlite3.Connection, canonical_id: str) -> list[ProviderMapping]:
        cursor = conn.execute(
            """
            SELECT provider_id, provider_hotel_id, match_confidence, match_method, include_in_ads
            FROM provider_mappings
            WHERE canonical_hotel_id=?
            ORDER BY created_at, provider_id
            """,
            (canonical_id,),
        )
        return [
            ProviderMapping(
                provider_id=row[0],
                provider_hotel_id=row[1],
                match_confidence=float(row[2]),
                match_method=row[3],
                include_in_ads=bool(row[4]),
            )
            for row in cursor.fetchall()
        ]

    def _row_to_hotel(self, conn: sqlite3.Connection, row: Sequence[Any]) -> CanonicalHotel:
        return CanonicalHotel(
            id=row[0],
            name=row[1],
            city=row[2] or "",
            country=row[3] or "",
            latitude=row[4],
            longitude=row[5],
            cross_reference_id=row[6],
            mappings=self._load_mappings(conn, row[0]),
        )

    _HOTEL_COLUMNS = "id, name, city, country, latitude, longitude, cross_reference_id"

    async def get_canonical_hotel(self, canonical_id: str) -> CanonicalHotel | None:
        def _op() -> CanonicalHotel | None:
            conn = self._require_connection()
            row = conn.execute(
                f"SELECT {self._HOTEL_COLUMNS} FROM canonical_hotels WHERE id=?",
                (canonical_id,),
            ).fetchone()
            return self._row_to_hotel(conn, row) if row else None

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def find_by_cross_reference(self, cross_reference_id: str) -> CanonicalHotel | None:
        normalized = _normalize_xref(cross_reference_id)
        if not normalized:
            return None

        def _op() -> CanonicalHotel | None:
            conn = self._require_connection()
            row = conn.execute(
                f"SELECT {self._HOTEL_COLUMNS} FROM canonical_hotels WHERE cross_reference_key=?",
                (normalized,),
            ).fetchone()
            return self._row_to_hotel(conn, row) if row else None

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def find_candidates_near(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        *,
        limit: int = 10,
    ) -> list[tuple[CanonicalHotel, float]]:
        """Return canonical hotels within ``radius_km`` with their distance, nearest first."""
        lat_delta = radius_km / _KM_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(latitude)), 1e-6)
        lng_delta = radius_km / (_KM_PER_DEGREE_LAT * cos_lat)

        def _op() -> list[tuple[CanonicalHotel, float]]:
            conn = self._require_connection()
            cursor = conn.execute(
                f"""
                SELECT {self._HOTEL_COLUMNS}
                FROM canonical_hotels
                WHERE latitude BETWEEN ? AND ?
                  AND longitude BETWEEN ? AND ?
                """,
                (latitude - lat_delta, latitude + lat_delta, longitude - lng_delta, longitude + lng_delta),
            )
            nearby: list[tuple[Sequence[Any], float]] = []
            for row in cursor.fetchall():
                distance = haversine_km(latitude, longitude, row[4], row[5])
                if distance <= radius_km:
                    nearby.append((row, distance))
            nearby.sort(key=lambda item: (item[1], item[0][0]))
            return [(self._row_to_hotel(conn, row), distance) for row, distance in nearby[:limit]]

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def create_canonical_hotel(self, hotel: RawHotelResult) -> CanonicalHotel:
        """Create a canonical record seeded with ``hotel``'s provider mapping.

        When another record already owns the same cross-reference id, the mapping is attached
        to that record instead and it is returned.
        """
        if not hotel.has_coordinates:
            raise ValueError("Canonical hotels require latitude and longitude")

        def _op() -> CanonicalHotel:
            conn = self._require_connection()
            now = _format_ts(_utc_now())
            xref_key = _normalize_xref(hotel.cross_reference_id)
            canonical_id = str(uuid.uuid4())
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO canonical_hotels(
                        id, name, normalized_name, city, country, latitude, longitude,
                        cross_reference_id, cross_reference_key, created_at, updated_at
                    ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(cross_reference_key) DO NOTHING
                    """,
                    (
                        canonical_id,
                        hotel.name,
                        normalize_name(hotel.name),
                        hotel.city,
                        hotel.country,
                        hotel.latitude,
                        hotel.longitude,
                        hotel.cross_reference_id,
                        xref_key,
                        now,
                        now,
                    ),
                )
                if cursor.rowcount == 0:
                    row = conn.execute(
                        "SELECT id FROM canonical_hotels WHERE cross_reference_key=?",
                        (xref_key,),
                    ).fetchone()
                    canonical_id = row[0]
                    logger.info(
                        "Canonical hotel for cross-reference %s already exists (%s)",
                        hotel.cross_reference_id,
                        canonical_id,
                    )
                self._upsert_mapping(
                    conn,
                    canonical_id,
                    ProviderMapping(
                        provider_id=hotel.provider_id,
                        provider_hotel_id=hotel.provider_hotel_id,
                        match_confidence=1.0,
                        match_method="initial",
                        include_in_ads=True,
                    ),
                    now,
                )
            row = conn.execute(
                f"SELECT {self._HOTEL_COLUMNS} FROM canonical_hotels WHERE id=?",
                (canonical_id,),
            ).fetchone()
            return self._row_to_hotel(conn, row)

        async with self._lock:
            return await asyncio.to_thread(_op)

    # ------------------------------------------------------------------
    # provider mappings

    @staticmethod
    def _upsert_mapping(
        conn: sqlite3.Connection,
        canonical_id: str,
        mapping: ProviderMapping,
        now: str,
    ) -> None:
        conn.execute(
            """
            INSERT INTO provider_mappings(
                provider_id, provider_hotel_id, canonical_hotel_id, match_confidence,
                match_method, include_in_ads, created_at, updated_at
            ) VALUES(?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(provider_id, provider_hotel_id) DO UPDATE SET
                canonical_hotel_id=excluded.canonical_hotel_id,
                match_confidence=excluded.match_confidence,
                match_method=excluded.match_method,
                include_in_ads=excluded.include_in_ads,
                updated_at=excluded.updated_at
            """,
            (
                mapping.provider_id,
                mapping.provider_hotel_id,
                canonical_id,
                mapping.match_confidence,
                mapping.match_method,
                1 if mapping.include_in_ads else 0,
                now,
                now,
            ),
        )

    async def upsert_provider_mapping(self, canonical_id: str, mapping: ProviderMapping) -> None:
        def _op() -> None:
            conn = self._require_connection()
            with conn:
                self._upsert_mapping(conn, canonical_id, mapping, _format_ts(_utc_now()))

        async with self._lock:
            await asyncio.to_thread(_op)

    async def find_mapping(
        self,
        provider_id: str,
        provider_hotel_id: str,
    ) -> tuple[str, ProviderMapping] | None:
        def _op() -> tuple[str, ProviderMapping] | None:
            conn = self._require_connection()
            row = conn.execute(
                """
                SELECT canonical_hotel_id, match_confidence, match_method, include_in_ads
                FROM provider_mappings
                WHERE provider_id=? AND provider_hotel_id=?
                """,
                (provider_id, provider_hotel_id),
            ).fetchone()
            if not row:
                return None
            return row[0], ProviderMapping(
                provider_id=provider_id,
                provider_hotel_id=provider_hotel_id,
                match_confidence=float(row[1]),
                match_method=row[2],
                include_in_ads=bool(row[3]),
            )

        async with self._lock:
            return await asyncio.to_thread(_op)

    # ------------------------------------------------------------------
    # price cache

    async def fetch_price_cache(
        self,
        canonical_id: str,
        check_in: date,
        check_out: date,
        adults: int,
        rooms: int,
    ) -> PriceCacheEntry | None:
        def _op() -> PriceCacheEntry | None:
            conn = self._require_connection()
            row = conn.execute(
                """
                SELECT prices, lowest_price, lowest_provider, cached_at, expires_at
                FROM hotel_price_cache
                WHERE canonical_hotel_id=? AND check_in=? AND check_out=? AND adults=? AND rooms=?
                """,
                (canonical_id, check_in.isoformat(), check_out.isoformat(), adults, rooms),
            ).fetchone()
            if not row:
                return None
            return PriceCacheEntry(
                canonical_hotel_id=canonical_id,
                check_in=check_in,
                check_out=check_out,
                adults=adults,
                rooms=rooms,
                prices=[PriceObservation.from_dict(item) for item in json.loads(row[0] or "[]")],
                lowest_price=row[1],
                lowest_provider=row[2],
                cached_at=_parse_ts(row[3]),
                expires_at=_parse_ts(row[4]),
            )

        async with self._lock:
            return await asyncio.to_thread(_op)

    async def upsert_price_cache(self, entry: PriceCacheEntry) -> None:
        def _op() -> None:
            conn = self._require_connection()
            with conn:
                conn.execute(
                    """
                    INSERT INTO hotel_price_cache(
                        canonical_hotel_id, check_in, check_out, adults, rooms,
                        prices, lowest_price, lowest_provider, cached_at, expires_at
                    ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(canonical_hotel_id, check_in, check_out, adults, rooms) DO UPDATE SET
                        prices=excluded.prices,
                        lowest_price=excluded.lowest_price,
                        lowest_provider=excluded.lowest_provider,
                        cached_at=excluded.cached_at,
                        expires_at=excluded.expires_at
                    """,
                    (
                        entry.canonical_hotel_id,
                        entry.check_in.isoformat(),
                        entry.check_out.isoformat(),
                        entry.adults,
                        entry.rooms,
                        _json_dumps([price.to_dict() for price in entry.prices]),
                        entry.lowest_price,
                        entry.lowest_provider,
                        _format_ts(entry.cached_at),
                        _format_ts(entry.expires_at),
                    ),
                )

        async with self._lock:
            await asyncio.to_thread(_op)

    async def purge_expired_prices(self, now: Optional[datetime] = None) -> int:
        cutoff = _format_ts(now or _utc_now())

        def _op() -> int:
            conn = self._require_connection()
            with conn:
                cursor = conn.execute("DELETE FROM hotel_price_cache WHERE expires_at <= ?", (cutoff,))
            return cursor.rowcount

        async with self._lock:
            return await asyncio.to_thread(_op)


MIGRATIONS: dict[int, str] = {
    1: """
    CREATE TABLE IF NOT EXISTS canonical_hotels (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        normalized_name TEXT NOT NULL,
        city TEXT,
        country TEXT,
        latitude REAL,
        longitude REAL,
        cross_reference_id TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_canonical_hotels_geo ON canonical_hotels(latitude, longitude);

    CREATE TABLE IF NOT EXISTS provider_mappings (
        provider_id TEXT NOT NULL,
        provider_hotel_id TEXT NOT NULL,
        canonical_hotel_id TEXT NOT NULL REFERENCES canonical_hotels(id) ON DELETE CASCADE,
        match_confidence REAL NOT NULL,
        match_method TEXT NOT NULL,
        include_in_ads INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY(provider_id, provider_hotel_id)
    );
    CREATE INDEX IF NOT EXISTS idx_provider_mappings_canonical ON provider_mappings(canonical_hotel_id);

    CREATE TABLE IF NOT EXISTS hotel_price_cache (
        canonical_hotel_id TEXT NOT NULL,
        check_in TEXT NOT NULL,
        check_out TEXT NOT NULL,
        adults INTEGER NOT NULL,
        rooms INTEGER NOT NULL,
        prices TEXT NOT NULL,
        lowest_price REAL,
        lowest_provider TEXT,
        cached_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        PRIMARY KEY(canonical_hotel_id, check_in, check_out, adults, rooms)
    );
    """,
    2: """
    ALTER TABLE canonical_hotels ADD COLUMN cross_reference_key TEXT;
    UPDATE canonical_hotels
    SET cross_reference_key = lower(trim(cross_reference_id))
    WHERE cross_reference_id IS NOT NULL AND trim(cross_reference_id) <> '';
    CREATE UNIQUE INDEX IF NOT EXISTS idx_canonical_hotels_xref ON canonical_hotels(cross_reference_key);
    CREATE INDEX IF NOT EXISTS idx_price_cache_expires ON hotel_price_cache(expires_at);
    """,
}
