"""Request-level services composed from the search, matching and cache layers."""

from .price_refresh import (
    CanonicalHotelNotFoundError,
    PriceRefreshRequest,
    PriceRefreshResult,
    PriceRefreshService,
)
from .search_service import SearchResponse, SearchService, SearchServiceError

__all__ = [
    "CanonicalHotelNotFoundError",
    "PriceRefreshRequest",
    "PriceRefreshResult",
    "PriceRefreshService",
    "SearchResponse",
    "SearchService",
    "SearchServiceError",
]
