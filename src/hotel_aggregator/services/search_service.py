"""Search pipeline: fan out, match, merge."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from hotel_aggregator.hotels.models import UnifiedHotelListing
from hotel_aggregator.matching.engine import CanonicalMatcher
from hotel_aggregator.matching.merger import merge_listings
from hotel_aggregator.providers.base import UnknownProviderError
from hotel_aggregator.search.coordinator import FanOutSearchCoordinator
from hotel_aggregator.search.params import SearchParams, SearchValidationError

logger = logging.getLogger(__name__)


class SearchServiceError(RuntimeError):
    """Raised when the pipeline fails for reasons other than bad input."""


@dataclass(slots=True)
class SearchResponse:
    listings: List[UnifiedHotelListing] = field(default_factory=list)
    providers_searched: int = 0
    raw_results: int = 0
    matched_results: int = 0

    @property
    def count(self) -> int:
        return len(self.listings)

    def to_dict(self) -> dict[str, object]:
        return {
            "success": True,
            "hotels": UnifiedHotelListing.from_iterable(self.listings),
            "count": self.count,
            "providers_searched": self.providers_searched,
            "raw_results": self.raw_results,
            "matched_results": self.matched_results,
        }


class SearchService:
    def __init__(self, coordinator: FanOutSearchCoordinator, matcher: CanonicalMatcher) -> None:
        self._coordinator = coordinator
        self._matcher = matcher

    async def search(self, params: SearchParams, provider_name: Optional[str] = None) -> SearchResponse:
        """Run one search end to end.

        ``SearchValidationError`` and ``UnknownProviderError`` propagate unchanged; anything
        else escaping the pipeline is wrapped in ``SearchServiceError``.
        """
        try:
            raw = await self._coordinator.search(params, provider_name=provider_name)
            matched = await self._matcher.match_all(raw)
            listings = merge_listings(matched, provider_order=self._coordinator.provider_order())
        except (SearchValidationError, UnknownProviderError):
            raise
        except Exception as exc:
            logger.exception("Search pipeline failed for %s", params.city_code)
            raise SearchServiceError(f"Failed to search hotels: {exc}") from exc

        response = SearchResponse(
            listings=listings,
            providers_searched=1 if provider_name else len(self._coordinator.provider_order()),
            raw_results=len(raw),
            matched_results=sum(1 for item in matched if item.match.canonical_id),
        )
        logger.info(
            "Search %s: %s raw result(s) → %s listing(s)",
            params.city_code,
            response.raw_results,
            response.count,
        )
        return response
