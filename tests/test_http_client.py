from __future__ import annotations

import json
from dataclasses import replace
from datetime import date

import httpx
import pytest

from hotel_aggregator.config.settings import Settings
from hotel_aggregator.providers import HttpHotelProvider, ProviderError, ProviderRegistry, build_registry
from hotel_aggregator.search import FanOutSearchCoordinator, SearchParams

PARAMS = SearchParams(city_code="NYC", check_in=date(2030, 6, 10), check_out=date(2030, 6, 11))


def _provider(handler) -> HttpHotelProvider:
    return HttpHotelProvider(
        "amadeus",
        base_url="https://gateway.example/amadeus/",
        api_key="secret",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_search_posts_payload_and_parses_hotels():
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "hotels": [
                    {"id": "A1", "name": "Hotel Alpha", "pricing": {"total": 120}},
                    {"id": "A2", "name": "Hotel Beta", "pricing": {"total": 90}},
                ]
            },
        )

    provider = _provider(handler)
    try:
        results = await provider.search(PARAMS)
    finally:
        await provider.close()

    assert seen["url"] == "https://gateway.example/amadeus/search"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["cityCode"] == "NYC"
    assert [r.provider_hotel_id for r in results] == ["A1", "A2"]
    assert all(r.provider_id == "amadeus" for r in results)


@pytest.mark.asyncio
async def test_search_applies_hotel_name_hint():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"hotels": [{"id": "A1", "name": "Hotel Alpha", "price": 1}, {"id": "A2", "name": "Beta", "price": 2}]},
        )

    provider = _provider(handler)
    try:
        results = await provider.search(replace(PARAMS, hotel_name="alpha"))
    finally:
        await provider.close()

    assert [r.provider_hotel_id for r in results] == ["A1"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response, code",
    [
        (httpx.Response(503, text="unavailable"), "HTTP_503"),
        (httpx.Response(200, text="<html>"), "MALFORMED_RESPONSE"),
        (httpx.Response(200, json=["not", "an", "object"]), "MALFORMED_RESPONSE"),
        (httpx.Response(200, json={"hotels": {"id": "A1"}}), "MALFORMED_RESPONSE"),
    ],
)
async def test_search_failures_raise_provider_error(response, code):
    provider = _provider(lambda request: response)
    try:
        with pytest.raises(ProviderError) as excinfo:
            await provider.search(PARAMS)
    finally:
        await provider.close()

    assert excinfo.value.code == code
    assert excinfo.value.provider == "amadeus"


@pytest.mark.asyncio
async def test_network_errors_raise_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = _provider(handler)
    try:
        with pytest.raises(ProviderError) as excinfo:
            await provider.search(PARAMS)
    finally:
        await provider.close()

    assert excinfo.value.code == "NETWORK_ERROR"


@pytest.mark.asyncio
async def test_cancel_booking_maps_refund_fields():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/bookings/B-77/cancel")
        return httpx.Response(
            200, json={"success": True, "message": "ok", "refundAmount": "80.5", "refundCurrency": "USD"}
        )

    provider = _provider(handler)
    try:
        result = await provider.cancel_booking("B-77")
    finally:
        await provider.close()

    assert result.success
    assert result.refund_amount == 80.5
    assert result.refund_currency == "USD"


@pytest.mark.asyncio
async def test_build_registry_keeps_configuration_order():
    settings = Settings(
        provider_endpoints=[
            {"name": "hotelbeds", "base_url": "https://h.example"},
            {"name": "amadeus", "base_url": "https://a.example", "timeout_s": 3},
        ]
    )
    registry = build_registry(settings)
    try:
        assert registry.names() == ["hotelbeds", "amadeus"]
    finally:
        await registry.close()


@pytest.mark.asyncio
async def test_hotel_without_price_does_not_drop_its_siblings():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"hotels": [{"id": "good", "name": "Hotel Alpha", "price": 100}, {"id": "bad"}]})

    registry = ProviderRegistry([_provider(handler)])
    coordinator = FanOutSearchCoordinator(registry, provider_timeout_s=1.0, today=lambda: date(2030, 6, 1))
    try:
        results = await coordinator.search(PARAMS)
    finally:
        await registry.close()

    assert [r.provider_hotel_id for r in results] == ["good"]
    assert results[0].price == 100.0
