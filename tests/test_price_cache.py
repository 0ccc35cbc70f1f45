from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio

from hotel_aggregator.cache import PriceCache
from hotel_aggregator.hotels.models import CancellationResult, PriceObservation, ProviderMapping, RawHotelResult
from hotel_aggregator.providers import HotelProvider, ProviderRegistry
from hotel_aggregator.search import FanOutSearchCoordinator, SearchValidationError
from hotel_aggregator.services import (
    CanonicalHotelNotFoundError,
    PriceRefreshRequest,
    PriceRefreshService,
)
from hotel_aggregator.storage import SqliteStore

TODAY = date(2030, 6, 1)
CHECK_IN = date(2030, 6, 10)
CHECK_OUT = date(2030, 6, 12)


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2030, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class _PricedProvider(HotelProvider):
    def __init__(self, name, quotes, *, fail=False):
        self.name = name
        self.quotes = quotes
        self.fail = fail
        self.calls = []

    async def search(self, params):
        self.calls.append(params)
        if self.fail:
            raise RuntimeError(f"{self.name} unavailable")
        return [
            RawHotelResult(
                provider_id=self.name,
                provider_hotel_id=hotel_id,
                name="Hotel Alpha",
                price=price,
                currency="USD",
                price_per_night=price / 2,
                available=available,
            )
            for hotel_id, price, available in self.quotes
        ]

    async def get_details(self, provider_hotel_id, params):
        raise NotImplementedError

    async def cancel_booking(self, provider_booking_id):
        return CancellationResult(success=False)


class _BrokenStore:
    async def fetch_price_cache(self, *args):
        raise RuntimeError("database is locked")

    async def upsert_price_cache(self, entry):
        raise RuntimeError("database is locked")


@pytest_asyncio.fixture
async def store(tmp_path):
    db = SqliteStore(tmp_path / "prices.sqlite")
    await db.initialize()
    yield db
    await db.close()


def _observation(provider: str, price: float) -> PriceObservation:
    return PriceObservation(provider, f"{provider}-1", price, "USD")


@pytest.mark.asyncio
async def test_write_then_read_is_fresh_until_freshness_window(store):
    clock = _Clock()
    cache = PriceCache(store, clock=clock)
    entry = cache.build_entry(
        "hotel-1", CHECK_IN, CHECK_OUT, 2, 1, [_observation("amadeus", 150), _observation("hotelbeds", 140)]
    )
    assert entry.lowest_price == 140
    assert entry.lowest_provider == "hotelbeds"
    assert entry.expires_at - entry.cached_at == timedelta(minutes=10)

    assert await cache.store(entry)
    hit = await cache.lookup("hotel-1", CHECK_IN, CHECK_OUT, 2, 1)
    assert hit is not None
    assert cache.is_fresh(hit)
    assert [p.to_dict() for p in hit.prices] == [p.to_dict() for p in entry.prices]

    clock.advance(minutes=6)
    stale = await cache.lookup("hotel-1", CHECK_IN, CHECK_OUT, 2, 1)
    assert stale is not None and not cache.is_fresh(stale)

    clock.advance(minutes=4)
    assert await cache.lookup("hotel-1", CHECK_IN, CHECK_OUT, 2, 1) is None


@pytest.mark.asyncio
async def test_second_write_replaces_first(store):
    cache = PriceCache(store, clock=_Clock())
    await cache.store(cache.build_entry("hotel-1", CHECK_IN, CHECK_OUT, 2, 1, [_observation("amadeus", 150)]))
    await cache.store(cache.build_entry("hotel-1", CHECK_IN, CHECK_OUT, 2, 1, [_observation("expedia", 170)]))

    hit = await cache.lookup("hotel-1", CHECK_IN, CHECK_OUT, 2, 1)
    assert hit is not None
    assert [p.provider_id for p in hit.prices] == ["expedia"]
    assert hit.lowest_price == 170


@pytest.mark.asyncio
async def test_purge_removes_only_expired_snapshots(store):
    clock = _Clock()
    cache = PriceCache(store, clock=clock)
    await cache.store(cache.build_entry("hotel-1", CHECK_IN, CHECK_OUT, 2, 1, [_observation("amadeus", 150)]))
    clock.advance(minutes=8)
    await cache.store(cache.build_entry("hotel-2", CHECK_IN, CHECK_OUT, 2, 1, [_observation("amadeus", 90)]))

    clock.advance(minutes=3)

    assert await cache.purge_expired() == 1
    assert await cache.lookup("hotel-2", CHECK_IN, CHECK_OUT, 2, 1) is not None


@pytest.mark.asyncio
async def test_store_errors_degrade_to_miss():
    cache = PriceCache(_BrokenStore(), clock=_Clock())  # type: ignore[arg-type]
    entry = cache.build_entry("hotel-1", CHECK_IN, CHECK_OUT, 2, 1, [])

    assert entry.lowest_price is None
    assert await cache.lookup("hotel-1", CHECK_IN, CHECK_OUT, 2, 1) is None
    assert not await cache.store(entry)


async def _seed_hotel(store: SqliteStore, mappings):
    first_provider, first_id = mappings[0]
    canonical = await store.create_canonical_hotel(
        RawHotelResult(
            provider_id=first_provider,
            provider_hotel_id=first_id,
            name="Hotel Alpha",
            price=0.0,
            currency="USD",
            city="NYC",
            latitude=40.75,
            longitude=-73.97,
        )
    )
    for provider, hotel_id in mappings[1:]:
        await store.upsert_provider_mapping(canonical.id, ProviderMapping(provider, hotel_id))
    return canonical


def _service(store, clock, *providers):
    coordinator = FanOutSearchCoordinator(ProviderRegistry(providers), provider_timeout_s=1.0, today=lambda: TODAY)
    return PriceRefreshService(store, coordinator, PriceCache(store, clock=clock))


@pytest.mark.asyncio
async def test_refresh_queries_mapped_providers_and_caches_minimum(store):
    canonical = await _seed_hotel(store, [("amadeus", "A1"), ("hotelbeds", "H1")])
    amadeus = _PricedProvider("amadeus", [("A0", 90.0, True), ("A1", 150.0, True)])
    hotelbeds = _PricedProvider("hotelbeds", [("H1", 140.0, True)])
    expedia = _PricedProvider("expedia", [("E1", 10.0, True)])
    clock = _Clock()
    service = _service(store, clock, amadeus, hotelbeds, expedia)
    request = PriceRefreshRequest(canonical.id, CHECK_IN, CHECK_OUT)

    result = await service.refresh(request)

    assert not result.cached
    assert result.lowest_price == 140.0
    assert result.lowest_provider == "hotelbeds"
    assert result.searched_providers == 2
    assert result.results_found == 2
    assert expedia.calls == []
    assert amadeus.calls[0].hotel_name == "Hotel Alpha"
    assert amadeus.calls[0].city_code == "NYC"

    again = await service.refresh(request)
    assert again.cached
    assert again.lowest_price == 140.0
    assert len(amadeus.calls) == 1


@pytest.mark.asyncio
async def test_refresh_ignores_unavailable_quotes(store):
    canonical = await _seed_hotel(store, [("amadeus", "A1"), ("hotelbeds", "H1")])
    amadeus = _PricedProvider("amadeus", [("A1", 100.0, False)])
    hotelbeds = _PricedProvider("hotelbeds", [("H1", 140.0, True)])

    result = await _service(store, _Clock(), amadeus, hotelbeds).refresh(
        PriceRefreshRequest(canonical.id, CHECK_IN, CHECK_OUT)
    )

    assert [p.provider_id for p in result.prices] == ["hotelbeds"]


@pytest.mark.asyncio
async def test_refresh_falls_back_to_stale_entry_when_live_fetch_fails(store):
    canonical = await _seed_hotel(store, [("amadeus", "A1")])
    amadeus = _PricedProvider("amadeus", [("A1", 150.0, True)])
    clock = _Clock()
    service = _service(store, clock, amadeus)
    request = PriceRefreshRequest(canonical.id, CHECK_IN, CHECK_OUT)
    await service.refresh(request)

    clock.advance(minutes=6)
    amadeus.fail = True
    result = await service.refresh(request)

    assert result.cached and result.stale
    assert result.lowest_price == 150.0

    clock.advance(minutes=5)
    empty = await service.refresh(request)
    assert not empty.cached
    assert empty.prices == []
    assert empty.lowest_price is None


@pytest.mark.asyncio
async def test_refresh_rejects_invalid_stay_before_serving_cache(store):
    canonical = await _seed_hotel(store, [("amadeus", "A1")])
    service = _service(store, _Clock(), _PricedProvider("amadeus", [("A1", 150.0, True)]))
    await service.refresh(PriceRefreshRequest(canonical.id, CHECK_IN, CHECK_OUT))

    with pytest.raises(SearchValidationError) as excinfo:
        await service.refresh(PriceRefreshRequest(canonical.id, CHECK_OUT, CHECK_IN))
    assert excinfo.value.field == "check_out"

    with pytest.raises(SearchValidationError):
        await service.refresh(PriceRefreshRequest(canonical.id, date(2030, 5, 1), CHECK_OUT))
    with pytest.raises(SearchValidationError):
        await service.refresh(PriceRefreshRequest(canonical.id, CHECK_IN, CHECK_OUT, adults=0))


@pytest.mark.asyncio
async def test_refresh_unknown_hotel_raises(store):
    service = _service(store, _Clock())
    with pytest.raises(CanonicalHotelNotFoundError):
        await service.refresh(PriceRefreshRequest("missing", CHECK_IN, CHECK_OUT))


def test_refresh_request_from_mapping():
    request = PriceRefreshRequest.from_mapping(
        {"canonicalHotelId": "hotel-1", "checkIn": "2030-06-10", "checkOut": "2030-06-12", "adults": "3"}
    )
    assert request.canonical_hotel_id == "hotel-1"
    assert request.check_in == CHECK_IN
    assert request.adults == 3
