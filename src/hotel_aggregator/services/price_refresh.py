"""Live price refresh for a single canonical hotel."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from hotel_aggregator.cache.price_cache import PriceCache
from hotel_aggregator.hotels.models import CanonicalHotel, PriceCacheEntry, PriceObservation, ProviderMapping
from hotel_aggregator.search.coordinator import FanOutSearchCoordinator
from hotel_aggregator.search.params import SearchParams, SearchValidationError

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


class CanonicalHotelNotFoundError(LookupError):
    def __init__(self, canonical_id: str) -> None:
        super().__init__(f"Canonical hotel '{canonical_id}' not found")
        self.canonical_id = canonical_id


@dataclass(slots=True)
class PriceRefreshRequest:
    canonical_hotel_id: str
    check_in: date
    check_out: date
    adults: int = 2
    rooms: int = 1
    currency: str = "USD"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PriceRefreshRequest":
        canonical_id = data.get("canonicalHotelId") or data.get("canonical_hotel_id")
        check_in = data.get("checkIn") or data.get("check_in")
        check_out = data.get("checkOut") or data.get("check_out")
        if not canonical_id or not check_in or not check_out:
            raise SearchValidationError("Missing required fields: canonicalHotelId, checkIn, checkOut")
        try:
            return cls(
                canonical_hotel_id=str(canonical_id),
                check_in=check_in if isinstance(check_in, date) else date.fromisoformat(str(check_in)),
                check_out=check_out if isinstance(check_out, date) else date.fromisoformat(str(check_out)),
                adults=int(data.get("adults", 2)),
                rooms=int(data.get("rooms", 1)),
                currency=str(data.get("currency") or "USD").upper(),
            )
        except (TypeError, ValueError) as exc:
            raise SearchValidationError(f"Invalid price refresh request: {exc}") from exc

    def validate(self, *, today: Optional[date] = None) -> "PriceRefreshRequest":
        """Raise ``SearchValidationError`` unless the stay could be searched."""
        if not self.canonical_hotel_id:
            raise SearchValidationError("canonical_hotel_id is required", field="canonical_hotel_id")
        today = today or date.today()
        if self.check_in < today:
            raise SearchValidationError("Check-in date must be today or in the future", field="check_in")
        if self.check_out <= self.check_in:
            raise SearchValidationError("Check-out date must be after check-in date", field="check_out")
        if self.adults < 1:
            raise SearchValidationError("At least one adult is required", field="adults")
        if self.rooms < 1:
            raise SearchValidationError("At least one room is required", field="rooms")
        return self


@dataclass(slots=True)
class PriceRefreshResult:
    canonical_hotel_id: str
    prices: List[PriceObservation] = field(default_factory=list)
    lowest_price: Optional[float] = None
    lowest_provider: Optional[str] = None
    cached: bool = False
    stale: bool = False
    searched_providers: int = 0
    results_found: int = 0

    @classmethod
    def from_entry(cls, entry: PriceCacheEntry, *, cached: bool, stale: bool = False) -> "PriceRefreshResult":
        return cls(
            canonical_hotel_id=entry.canonical_hotel_id,
            prices=list(entry.prices),
            lowest_price=entry.lowest_price,
            lowest_provider=entry.lowest_provider,
            cached=cached,
            stale=stale,
            results_found=len(entry.prices),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "canonical_hotel_id": self.canonical_hotel_id,
            "prices": [price.to_dict() for price in self.prices],
            "lowest_price": self.lowest_price,
            "lowest_provider": self.lowest_provider,
            "cached": self.cached,
            "stale": self.stale,
            "searched_providers": self.searched_providers,
            "results_found": self.results_found,
        }


class PriceRefreshService:
    """Serve a fresh cached snapshot or re-query every provider mapped to the hotel."""

    def __init__(
        self,
        store: "SqliteStore",
        coordinator: FanOutSearchCoordinator,
        price_cache: PriceCache,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._price_cache = price_cache

    async def refresh(self, request: PriceRefreshRequest) -> PriceRefreshResult:
        request.validate(today=self._coordinator.today())
        hotel = await self._store.get_canonical_hotel(request.canonical_hotel_id)
        if hotel is None:
            raise CanonicalHotelNotFoundError(request.canonical_hotel_id)

        cached = await self._price_cache.lookup(
            hotel.id, request.check_in, request.check_out, request.adults, request.rooms
        )
        if cached is not None and self._price_cache.is_fresh(cached):
            logger.debug("Serving fresh cached prices for %s", hotel.id)
            return PriceRefreshResult.from_entry(cached, cached=True)

        observations = await self._fetch_live(hotel, request)
        searched = len(hotel.mappings)

        if observations:
            entry = self._price_cache.build_entry(
                hotel.id,
                request.check_in,
                request.check_out,
                request.adults,
                request.rooms,
                observations,
            )
            await self._price_cache.store(entry)
            result = PriceRefreshResult.from_entry(entry, cached=False)
        elif cached is not None:
            logger.info("No live prices for %s; serving stale snapshot from %s", hotel.id, cached.cached_at)
            result = PriceRefreshResult.from_entry(cached, cached=True, stale=True)
        else:
            result = PriceRefreshResult(canonical_hotel_id=hotel.id)
        result.searched_providers = searched
        return result

    async def _fetch_live(self, hotel: CanonicalHotel, request: PriceRefreshRequest) -> List[PriceObservation]:
        if not hotel.mappings:
            logger.info("Canonical hotel %s has no provider mappings", hotel.id)
            return []
        if not hotel.city:
            logger.warning("Canonical hotel %s has no city; skipping live price search", hotel.id)
            return []
        params = SearchParams(
            city_code=hotel.city,
            check_in=request.check_in,
            check_out=request.check_out,
            adults=request.adults,
            rooms=request.rooms,
            currency=request.currency,
            hotel_name=hotel.name,
        )
        outcomes = await asyncio.gather(
            *(self._observe(mapping, params) for mapping in hotel.mappings),
        )
        return [obs for obs in outcomes if obs is not None]

    async def _observe(self, mapping: ProviderMapping, params: SearchParams) -> Optional[PriceObservation]:
        try:
            results = await self._coordinator.search(params, provider_name=mapping.provider_id)
        except SearchValidationError:
            raise
        except Exception as exc:
            logger.warning("Price search on %s failed: %s", mapping.provider_id, exc)
            return None
        for result in results:
            if result.provider_hotel_id == mapping.provider_hotel_id and result.available:
                return PriceObservation(
                    provider_id=mapping.provider_id,
                    provider_hotel_id=result.provider_hotel_id,
                    price=result.price,
                    currency=result.currency,
                    price_per_night=result.price_per_night,
                    available=result.available,
                    rooms_available=result.rooms_available,
                )
        logger.debug("%s did not quote %s", mapping.provider_id, mapping.provider_hotel_id)
        return None
