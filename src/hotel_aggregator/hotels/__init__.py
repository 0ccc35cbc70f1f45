"""Hotel domain models and normalization helpers."""

from .models import (
    CachedOffer,
    CancellationResult,
    CanonicalHotel,
    HotelDetails,
    MatchedResult,
    MatchResult,
    OfferHotelInfo,
    OfferRoom,
    OfferSearchContext,
    PriceCacheEntry,
    PriceObservation,
    ProviderMapping,
    ProviderOffer,
    RawHotelResult,
    RoomOffer,
    UnifiedHotelListing,
)
from .normalizer import (
    build_hotel_details,
    build_raw_result,
    build_raw_results,
    build_room_offer,
)

__all__ = [
    "CachedOffer",
    "CancellationResult",
    "CanonicalHotel",
    "HotelDetails",
    "MatchedResult",
    "MatchResult",
    "OfferHotelInfo",
    "OfferRoom",
    "OfferSearchContext",
    "PriceCacheEntry",
    "PriceObservation",
    "ProviderMapping",
    "ProviderOffer",
    "RawHotelResult",
    "RoomOffer",
    "UnifiedHotelListing",
    "build_hotel_details",
    "build_raw_result",
    "build_raw_results",
    "build_room_offer",
]
