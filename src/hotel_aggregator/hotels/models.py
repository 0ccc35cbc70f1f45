"""Dataclasses for provider results, canonical hotels and merged listings."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional


@dataclass(slots=True)
class RawHotelResult:
    """One provider's view of one hotel for one search."""

    provider_id: str
    provider_hotel_id: str
    name: str
    price: float
    currency: str
    address: str = ""
    city: str = ""
    country: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    price_per_night: Optional[float] = None
    available: bool = True
    rooms_available: Optional[int] = None
    images: List[str] = field(default_factory=list)
    amenities: List[str] = field(default_factory=list)
    description: Optional[str] = None
    star_rating: Optional[float] = None
    cross_reference_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "provider_hotel_id": self.provider_hotel_id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "price": self.price,
            "price_per_night": self.price_per_night,
            "currency": self.currency,
            "available": self.available,
            "rooms_available": self.rooms_available,
            "images": list(self.images),
            "amenities": list(self.amenities),
            "description": self.description,
            "star_rating": self.star_rating,
            "cross_reference_id": self.cross_reference_id,
        }


@dataclass(slots=True)
class RoomOffer:
    """A bookable room/rate as quoted by a provider."""

    room_id: str
    room_type: str
    price: float
    currency: str
    description: Optional[str] = None
    bed_type: Optional[str] = None
    max_occupancy: Optional[int] = None
    available: bool = True
    amenities: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class HotelDetails:
    """Detail-page view of a hotel: the search result plus its room offers."""

    hotel: RawHotelResult
    rooms: List[RoomOffer] = field(default_factory=list)
    check_in_time: Optional[str] = None
    check_out_time: Optional[str] = None
    cancellation_policy: Optional[str] = None


@dataclass(slots=True)
class CancellationResult:
    success: bool
    message: Optional[str] = None
    refund_amount: Optional[float] = None
    refund_currency: Optional[str] = None


@dataclass(slots=True)
class ProviderMapping:
    """Links a canonical hotel to one provider's local identifier."""

    provider_id: str
    provider_hotel_id: str
    match_confidence: float = 1.0
    match_method: str = "initial"
    include_in_ads: bool = True


@dataclass(slots=True)
class CanonicalHotel:
    """Provider-independent identity of a physical hotel."""

    id: str
    name: str
    city: str = ""
    country: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    cross_reference_id: Optional[str] = None
    mappings: List[ProviderMapping] = field(default_factory=list)


@dataclass(frozen=True)
class MatchResult:
    canonical_id: Optional[str]
    confidence: float
    should_advertise: bool
    method: str
    name_score: Optional[float] = None
    location_score: Optional[float] = None
    candidates: int = 0

    @classmethod
    def no_match(cls, *, candidates: int = 0) -> "MatchResult":
        return cls(canonical_id=None, confidence=0.0, should_advertise=False, method="no_match", candidates=candidates)


@dataclass(frozen=True)
class MatchedResult:
    hotel: RawHotelResult
    match: MatchResult


@dataclass(frozen=True)
class ProviderOffer:
    provider_id: str
    provider_hotel_id: str
    price: float
    currency: str
    confidence: float

    def to_dict(self) -> dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "provider_hotel_id": self.provider_hotel_id,
            "price": self.price,
            "currency": self.currency,
            "confidence": self.confidence,
        }


@dataclass(slots=True)
class UnifiedHotelListing:
    """User-facing merged record for one canonical hotel."""

    canonical_id: str
    name: str
    price: float
    currency: str
    selected_provider: str
    all_offers: List[ProviderOffer]
    images: List[str] = field(default_factory=list)
    amenities: List[str] = field(default_factory=list)
    description: str = ""
    star_rating: Optional[float] = None
    should_advertise: bool = True
    data_sources: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "canonical_id": self.canonical_id,
            "name": self.name,
            "price": self.price,
            "currency": self.currency,
            "selected_provider": self.selected_provider,
            "all_offers": [offer.to_dict() for offer in self.all_offers],
            "images": list(self.images),
            "amenities": list(self.amenities),
            "description": self.description,
            "star_rating": self.star_rating,
            "should_advertise": self.should_advertise,
            "data_sources": {facet: list(sources) for facet, sources in self.data_sources.items()},
        }

    @classmethod
    def from_iterable(cls, listings: Iterable["UnifiedHotelListing"]) -> List[dict[str, object]]:
        return [listing.to_dict() for listing in listings]


@dataclass(slots=True)
class PriceObservation:
    """One provider's live price for a specific canonical hotel."""

    provider_id: str
    provider_hotel_id: str
    price: float
    currency: str
    price_per_night: Optional[float] = None
    available: bool = True
    rooms_available: Optional[int] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "provider_id": self.provider_id,
            "provider_hotel_id": self.provider_hotel_id,
            "price": self.price,
            "currency": self.currency,
            "price_per_night": self.price_per_night,
            "available": self.available,
            "rooms_available": self.rooms_available,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceObservation":
        return cls(
            provider_id=data["provider_id"],
            provider_hotel_id=data["provider_hotel_id"],
            price=float(data["price"]),
            currency=data.get("currency") or "USD",
            price_per_night=data.get("price_per_night"),
            available=bool(data.get("available", True)),
            rooms_available=data.get("rooms_available"),
        )


@dataclass(slots=True)
class PriceCacheEntry:
    """Aggregated price snapshot for (hotel, dates, party)."""

    canonical_hotel_id: str
    check_in: date
    check_out: date
    adults: int
    rooms: int
    prices: List[PriceObservation]
    lowest_price: Optional[float]
    lowest_provider: Optional[str]
    cached_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_fresh(self, now: datetime, window: timedelta) -> bool:
        return not self.is_expired(now) and now - self.cached_at < window

    def to_dict(self) -> dict[str, object]:
        return {
            "canonical_hotel_id": self.canonical_hotel_id,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "adults": self.adults,
            "rooms": self.rooms,
            "prices": [price.to_dict() for price in self.prices],
            "lowest_price": self.lowest_price,
            "lowest_provider": self.lowest_provider,
            "cached_at": self.cached_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class OfferRoom:
    room_id: str
    room_type: str
    price: float
    currency: str = "USD"
    description: Optional[str] = None
    bed_type: Optional[str] = None
    max_occupancy: Optional[int] = None

    @classmethod
    def from_room_offer(cls, room: RoomOffer) -> "OfferRoom":
        return cls(
            room_id=room.room_id,
            room_type=room.room_type,
            price=room.price,
            currency=room.currency or "USD",
            description=room.description,
            bed_type=room.bed_type,
            max_occupancy=room.max_occupancy,
        )


@dataclass(frozen=True)
class OfferSearchContext:
    check_in: date
    check_out: date
    adults: int
    rooms: int


@dataclass(frozen=True)
class OfferHotelInfo:
    name: str
    address: str


@dataclass(frozen=True)
class CachedOffer:
    """Frozen snapshot of one room offer, held between room selection and payment."""

    cache_key: str
    provider_id: str
    provider_hotel_id: str
    room: OfferRoom
    check_in: date
    check_out: date
    adults: int
    rooms: int
    hotel_name: str
    hotel_address: str
    cached_at: datetime
    expires_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "cache_key": self.cache_key,
            "provider_id": self.provider_id,
            "provider_hotel_id": self.provider_hotel_id,
            "room": {
                "room_id": self.room.room_id,
                "room_type": self.room.room_type,
                "description": self.room.description,
                "bed_type": self.room.bed_type,
                "max_occupancy": self.room.max_occupancy,
                "price": self.room.price,
                "currency": self.room.currency,
            },
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "adults": self.adults,
            "rooms": self.rooms,
            "hotel_name": self.hotel_name,
            "hotel_address": self.hotel_address,
            "cached_at": self.cached_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CachedOffer":
        room = data["room"]
        return cls(
            cache_key=data["cache_key"],
            provider_id=data["provider_id"],
            provider_hotel_id=data["provider_hotel_id"],
            room=OfferRoom(
                room_id=room["room_id"],
                room_type=room["room_type"],
                price=float(room["price"]),
                currency=room.get("currency") or "USD",
                description=room.get("description"),
                bed_type=room.get("bed_type"),
                max_occupancy=room.get("max_occupancy"),
            ),
            check_in=date.fromisoformat(data["check_in"]),
            check_out=date.fromisoformat(data["check_out"]),
            adults=int(data["adults"]),
            rooms=int(data["rooms"]),
            hotel_name=data.get("hotel_name") or "",
            hotel_address=data.get("hotel_address") or "",
            cached_at=datetime.fromisoformat(data["cached_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )
