"""Concurrent search across every registered provider."""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional

from hotel_aggregator.hotels.models import CancellationResult, HotelDetails, RawHotelResult
from hotel_aggregator.providers.base import HotelProvider, ProviderRegistry

from .params import SearchParams

logger = logging.getLogger(__name__)


class FanOutSearchCoordinator:
    """Dispatch one search per provider and keep whatever succeeds.

    A provider that raises, times out or returns garbage contributes nothing; its siblings
    are unaffected. Only invalid parameters are reported to the caller, and those are
    rejected before any provider is contacted.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        provider_timeout_s: float = 15.0,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.registry = registry
        self.provider_timeout_s = provider_timeout_s
        self._today = today or date.today

    def today(self) -> date:
        return self._today()

    def provider_order(self) -> List[str]:
        return self.registry.names()

    async def search(
        self,
        params: SearchParams,
        provider_name: Optional[str] = None,
    ) -> List[RawHotelResult]:
        params.validate(today=self.today())
        if provider_name is not None:
            targets = [self.registry.get(provider_name)]
        else:
            targets = list(self.registry)
        if not targets:
            logger.warning("No providers registered; returning empty result set")
            return []

        logger.info(
            "Searching %s provider(s) for %s (%s → %s, adults=%s, rooms=%s)",
            len(targets),
            params.city_code,
            params.check_in,
            params.check_out,
            params.adults,
            params.rooms,
        )
        outcomes = await asyncio.gather(
            *(self._search_one(provider, params) for provider in targets),
        )

        results: List[RawHotelResult] = []
        failures = 0
        for provider, outcome in zip(targets, outcomes):
            if outcome is None:
                failures += 1
                continue
            logger.debug("Provider %s returned %s result(s)", provider.name, len(outcome))
            results.extend(outcome)
        if failures == len(targets):
            logger.warning("All %s provider(s) failed for %s", failures, params.city_code)
        elif failures:
            logger.info("%s of %s provider(s) failed; serving partial results", failures, len(targets))
        return results

    async def _search_one(
        self,
        provider: HotelProvider,
        params: SearchParams,
    ) -> Optional[List[RawHotelResult]]:
        try:
            results = await asyncio.wait_for(provider.search(params), timeout=self.provider_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Search on %s timed out after %.1fs", provider.name, self.provider_timeout_s
            )
            return None
        except Exception as exc:
            logger.warning("Search failed for %s: %s", provider.name, exc, exc_info=True)
            return None
        if not isinstance(results, list):
            logger.warning(
                "Provider %s returned %s instead of a result list", provider.name, type(results).__name__
            )
            return None
        valid = [item for item in results if isinstance(item, RawHotelResult)]
        if len(valid) != len(results):
            logger.warning(
                "Provider %s returned %s malformed item(s); keeping %s result(s)",
                provider.name,
                len(results) - len(valid),
                len(valid),
            )
        return valid

    async def get_details(
        self,
        provider_name: str,
        provider_hotel_id: str,
        params: SearchParams,
    ) -> HotelDetails:
        provider = self.registry.get(provider_name)
        return await asyncio.wait_for(
            provider.get_details(provider_hotel_id, params), timeout=self.provider_timeout_s
        )

    async def cancel_booking(self, provider_name: str, provider_booking_id: str) -> CancellationResult:
        provider = self.registry.get(provider_name)
        logger.info("Cancelling booking %s with %s", provider_booking_id, provider_name)
        return await asyncio.wait_for(
            provider.cancel_booking(provider_booking_id), timeout=self.provider_timeout_s
        )
