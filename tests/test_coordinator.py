from __future__ import annotations

import asyncio
from datetime import date

import pytest

from hotel_aggregator.hotels.models import CancellationResult, HotelDetails, RawHotelResult
from hotel_aggregator.providers import HotelProvider, ProviderError, ProviderRegistry, UnknownProviderError
from hotel_aggregator.search import FanOutSearchCoordinator, SearchParams, SearchValidationError

TODAY = date(2030, 6, 1)


def _result(provider: str, hotel_id: str, price: float = 100.0) -> RawHotelResult:
    return RawHotelResult(
        provider_id=provider,
        provider_hotel_id=hotel_id,
        name=f"Hotel {hotel_id}",
        price=price,
        currency="USD",
    )


class _DummyProvider(HotelProvider):
    def __init__(self, name, results=None, *, error=None, delay=0.0):
        self.name = name
        self._results = results or []
        self._error = error
        self._delay = delay
        self.calls: list[SearchParams] = []

    async def search(self, params):
        self.calls.append(params)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        return list(self._results)

    async def get_details(self, provider_hotel_id, params):
        return HotelDetails(hotel=_result(self.name, provider_hotel_id))

    async def cancel_booking(self, provider_booking_id):
        return CancellationResult(success=True, message=f"cancelled {provider_booking_id}")


class _GarbageProvider(_DummyProvider):
    async def search(self, params):
        return {"hotels": []}


def _params(**overrides) -> SearchParams:
    values = dict(city_code="NYC", check_in=date(2030, 6, 10), check_out=date(2030, 6, 12))
    values.update(overrides)
    return SearchParams(**values)


def _coordinator(*providers, timeout=1.0) -> FanOutSearchCoordinator:
    return FanOutSearchCoordinator(ProviderRegistry(providers), provider_timeout_s=timeout, today=lambda: TODAY)


@pytest.mark.asyncio
async def test_search_concatenates_results_in_registration_order():
    first = _DummyProvider("amadeus", [_result("amadeus", "a1"), _result("amadeus", "a2")])
    second = _DummyProvider("hotelbeds", [_result("hotelbeds", "h1")])

    results = await _coordinator(first, second).search(_params())

    assert [(r.provider_id, r.provider_hotel_id) for r in results] == [
        ("amadeus", "a1"),
        ("amadeus", "a2"),
        ("hotelbeds", "h1"),
    ]


@pytest.mark.asyncio
async def test_failing_provider_does_not_affect_siblings():
    broken = _DummyProvider("broken", error=ProviderError("broken", "HTTP_500", "boom"))
    healthy = _DummyProvider("healthy", [_result("healthy", "h1")])

    results = await _coordinator(broken, healthy).search(_params())

    assert [r.provider_hotel_id for r in results] == ["h1"]


@pytest.mark.asyncio
async def test_slow_and_malformed_providers_are_excluded():
    slow = _DummyProvider("slow", [_result("slow", "s1")], delay=0.5)
    garbage = _GarbageProvider("garbage")
    healthy = _DummyProvider("healthy", [_result("healthy", "h1")])

    results = await _coordinator(slow, garbage, healthy, timeout=0.05).search(_params())

    assert [r.provider_id for r in results] == ["healthy"]


@pytest.mark.asyncio
async def test_all_providers_failing_yields_empty_list():
    providers = [_DummyProvider(f"p{i}", error=RuntimeError("down")) for i in range(3)]

    assert await _coordinator(*providers).search(_params()) == []


@pytest.mark.asyncio
async def test_invalid_dates_are_rejected_before_any_provider_call():
    provider = _DummyProvider("amadeus", [_result("amadeus", "a1")])
    coordinator = _coordinator(provider)

    with pytest.raises(SearchValidationError):
        await coordinator.search(_params(check_out=date(2030, 6, 9)))
    with pytest.raises(SearchValidationError):
        await coordinator.search(_params(check_in=date(2030, 5, 1)))

    assert provider.calls == []


@pytest.mark.asyncio
async def test_named_provider_targets_only_that_provider():
    first = _DummyProvider("amadeus", [_result("amadeus", "a1")])
    second = _DummyProvider("hotelbeds", [_result("hotelbeds", "h1")])
    coordinator = _coordinator(first, second)

    results = await coordinator.search(_params(), provider_name="hotelbeds")

    assert [r.provider_id for r in results] == ["hotelbeds"]
    assert first.calls == []
    with pytest.raises(UnknownProviderError):
        await coordinator.search(_params(), provider_name="expedia")


@pytest.mark.asyncio
async def test_details_and_cancellation_delegate_to_the_provider():
    coordinator = _coordinator(_DummyProvider("amadeus"))

    details = await coordinator.get_details("amadeus", "a9", _params())
    outcome = await coordinator.cancel_booking("amadeus", "B-1")

    assert details.hotel.provider_hotel_id == "a9"
    assert outcome.success
    assert outcome.message == "cancelled B-1"


@pytest.mark.asyncio
async def test_malformed_items_are_dropped_from_a_provider_list():
    mixed = _DummyProvider("mixed", [_result("mixed", "m1"), {"id": "x"}, None])  # type: ignore[list-item]

    results = await _coordinator(mixed).search(_params())

    assert [r.provider_hotel_id for r in results] == ["m1"]
