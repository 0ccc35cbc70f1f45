"""Per-hotel price snapshots with a hard expiry and a shorter freshness window."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from hotel_aggregator.hotels.models import PriceCacheEntry, PriceObservation

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.storage.sqlite_store import SqliteStore

DEFAULT_TTL_S = 600
DEFAULT_FRESHNESS_S = 300

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PriceCache:
    """Read/write price snapshots through the store; store failures read as misses."""

    def __init__(
        self,
        store: "SqliteStore",
        *,
        ttl_s: int = DEFAULT_TTL_S,
        freshness_s: int = DEFAULT_FRESHNESS_S,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self.ttl = timedelta(seconds=ttl_s)
        self.freshness = timedelta(seconds=freshness_s)
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        return self._clock()

    async def lookup(
        self,
        canonical_id: str,
        check_in: date,
        check_out: date,
        adults: int,
        rooms: int,
    ) -> Optional[PriceCacheEntry]:
        """Return the snapshot unless it is missing, past hard expiry, or unreadable."""
        try:
            entry = await self._store.fetch_price_cache(canonical_id, check_in, check_out, adults, rooms)
        except Exception as exc:
            logger.warning("Price cache read failed for %s: %s", canonical_id, exc)
            return None
        if entry is None:
            logger.debug("Price cache miss for %s (%s → %s)", canonical_id, check_in, check_out)
            return None
        if entry.is_expired(self.now()):
            logger.debug("Price cache entry for %s expired at %s", canonical_id, entry.expires_at.isoformat())
            return None
        return entry

    def is_fresh(self, entry: PriceCacheEntry) -> bool:
        return entry.is_fresh(self.now(), self.freshness)

    async def store(self, entry: PriceCacheEntry) -> bool:
        try:
            await self._store.upsert_price_cache(entry)
        except Exception as exc:
            logger.warning("Price cache write failed for %s: %s", entry.canonical_hotel_id, exc)
            return False
        return True

    def build_entry(
        self,
        canonical_id: str,
        check_in: date,
        check_out: date,
        adults: int,
        rooms: int,
        prices: Iterable[PriceObservation],
    ) -> PriceCacheEntry:
        observations = list(prices)
        cheapest = min(observations, key=lambda obs: obs.price, default=None)
        now = self.now()
        return PriceCacheEntry(
            canonical_hotel_id=canonical_id,
            check_in=check_in,
            check_out=check_out,
            adults=adults,
            rooms=rooms,
            prices=observations,
            lowest_price=cheapest.price if cheapest else None,
            lowest_provider=cheapest.provider_id if cheapest else None,
            cached_at=now,
            expires_at=now + self.ttl,
        )

    async def purge_expired(self) -> int:
        try:
            removed = await self._store.purge_expired_prices(self.now())
        except Exception as exc:
            logger.warning("Price cache purge failed: %s", exc)
            return 0
        if removed:
            logger.info("Purged %s expired price snapshot(s)", removed)
        return removed
