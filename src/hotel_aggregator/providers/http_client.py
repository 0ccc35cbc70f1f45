"""Client for JSON inventory gateways that speak the aggregator's provider contract."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx

from hotel_aggregator.hotels.models import CancellationResult, HotelDetails, RawHotelResult
from hotel_aggregator.hotels.normalizer import build_hotel_details, build_raw_results

from .base import HotelProvider, ProviderError, ProviderRegistry

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.config.settings import Settings
    from hotel_aggregator.search.params import SearchParams

logger = logging.getLogger(__name__)


class HttpHotelProvider(HotelProvider):
    """Thin wrapper around a provider gateway's search/details/cancel endpoints."""

    def __init__(
        self,
        name: str,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        default_headers = {
            "Accept": "application/json",
            "User-Agent": "hotel-aggregator/0.1.0",
        }
        if api_key:
            default_headers["Authorization"] = f"Bearer {api_key}"
        if headers:
            default_headers.update(headers)
        self.name = name
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=default_headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: Optional[dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:256]
            raise ProviderError(
                self.name, f"HTTP_{exc.response.status_code}", f"{path} failed: {body}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, "NETWORK_ERROR", f"{path} failed: {exc}") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "MALFORMED_RESPONSE", f"{path} returned non-JSON body") from exc
        if not isinstance(data, dict):
            raise ProviderError(self.name, "MALFORMED_RESPONSE", f"{path} returned {type(data).__name__}")
        return data

    async def search(self, params: SearchParams) -> List[RawHotelResult]:
        logger.debug("Searching %s for %s (%s → %s)", self.name, params.city_code, params.check_in, params.check_out)
        payload = await self._post("/search", params.to_payload())
        try:
            results = build_raw_results(payload, provider_id=self.name, params=params)
        except (ValueError, TypeError, AttributeError) as exc:
            raise ProviderError(self.name, "MALFORMED_RESPONSE", str(exc)) from exc
        if params.hotel_name:
            term = params.hotel_name.lower()
            results = [result for result in results if term in result.name.lower()]
        return results

    async def get_details(self, provider_hotel_id: str, params: SearchParams) -> HotelDetails:
        payload = await self._post(f"/hotels/{provider_hotel_id}", params.to_payload())
        try:
            return build_hotel_details(payload, provider_id=self.name, params=params)
        except (ValueError, TypeError, AttributeError) as exc:
            raise ProviderError(self.name, "MALFORMED_RESPONSE", str(exc)) from exc

    async def cancel_booking(self, provider_booking_id: str) -> CancellationResult:
        payload = await self._post(f"/bookings/{provider_booking_id}/cancel")
        refund = payload.get("refundAmount")
        return CancellationResult(
            success=bool(payload.get("success")),
            message=payload.get("message"),
            refund_amount=float(refund) if refund is not None else None,
            refund_currency=payload.get("refundCurrency"),
        )


def build_registry(settings: "Settings") -> ProviderRegistry:
    """Register an HTTP client for every configured endpoint, in configuration order."""
    registry = ProviderRegistry()
    for endpoint in settings.provider_endpoints:
        registry.register(
            HttpHotelProvider(
                endpoint.name,
                base_url=endpoint.base_url,
                api_key=endpoint.api_key,
                timeout=endpoint.timeout_s or settings.provider_timeout_s,
            )
        )
    return registry
