"""Utilities to transform raw provider payloads into normalised records."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from .models import HotelDetails, RawHotelResult, RoomOffer

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.search.params import SearchParams

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extract_images(entries: Optional[Iterable[Any]]) -> List[str]:
    images: List[str] = []
    if not entries:
        return images
    for entry in entries:
        if isinstance(entry, dict):
            url = entry.get("url") or entry.get("large") or entry.get("path")
        else:
            url = entry
        url = _clean_str(url)
        if url:
            images.append(url)
    return images


def _extract_amenities(entries: Optional[Iterable[Any]]) -> List[str]:
    amenities: List[str] = []
    if not entries:
        return amenities
    for entry in entries:
        if isinstance(entry, dict):
            text = entry.get("description") or entry.get("name")
        else:
            text = entry
        text = _clean_str(text)
        if text:
            amenities.append(text)
    return amenities


def _format_address(address: Any) -> tuple[str, str, str]:
    """Return (display address, city, country) from a string or structured address."""
    if isinstance(address, str):
        return address.strip(), "", ""
    if not isinstance(address, dict):
        return "", "", ""
    lines = address.get("lines") or [address.get("line1") or address.get("addressLine1")]
    city = _clean_str(address.get("cityName") or address.get("city")) or ""
    country = _clean_str(address.get("countryCode") or address.get("country")) or ""
    parts = [str(line).strip() for line in lines if line]
    if city:
        parts.append(city)
    if country:
        parts.append(country)
    return ", ".join(parts), city, country


def build_raw_result(
    hotel: dict[str, Any],
    *,
    provider_id: str,
    params: SearchParams,
) -> RawHotelResult:
    """Map one provider hotel payload onto a ``RawHotelResult``.

    Raises ``ValueError`` when the payload lacks an identifier or a usable total price.
    """
    hotel_id = _clean_str(hotel.get("id") or hotel.get("hotelId") or hotel.get("code"))
    if not hotel_id:
        raise ValueError(f"{provider_id} hotel payload is missing an identifier")
    pricing: Dict[str, Any] = hotel.get("pricing") or {}
    total = _to_float(pricing.get("total", hotel.get("price")))
    if total is None or total < 0:
        raise ValueError(f"{provider_id} hotel {hotel_id} has no usable total price")
    per_night = _to_float(pricing.get("perNight"))
    if per_night is None and params.nights > 0:
        per_night = round(total / params.nights, 2)

    geo: Dict[str, Any] = hotel.get("geoLocation") or {}
    address, city, country = _format_address(hotel.get("address"))
    metadata: Dict[str, Any] = dict(hotel.get("metadata") or {})
    cross_reference_id = _clean_str(
        hotel.get("crossReferenceId") or hotel.get("giataId") or metadata.get("giataId")
    )

    return RawHotelResult(
        provider_id=provider_id,
        provider_hotel_id=hotel_id,
        name=_clean_str(hotel.get("name")) or "",
        price=total,
        currency=_clean_str(pricing.get("currency") or hotel.get("currency")) or params.currency,
        address=address,
        city=_clean_str(hotel.get("city")) or city or params.city_code,
        country=_clean_str(hotel.get("country")) or country,
        latitude=_to_float(geo.get("latitude", hotel.get("latitude"))),
        longitude=_to_float(geo.get("longitude", hotel.get("longitude"))),
        price_per_night=per_night,
        available=bool(hotel.get("available", True)),
        rooms_available=_to_int(hotel.get("roomsAvailable")),
        images=_extract_images(hotel.get("images")),
        amenities=_extract_amenities(hotel.get("amenities")),
        description=_clean_str(hotel.get("description")),
        star_rating=_to_float(hotel.get("starRating")),
        cross_reference_id=cross_reference_id,
        metadata=metadata,
    )


def build_raw_results(
    payload: dict[str, Any],
    *,
    provider_id: str,
    params: SearchParams,
) -> List[RawHotelResult]:
    """Normalise every usable hotel in ``payload``; malformed entries are logged and skipped.

    Raises ``ValueError`` only when ``hotels`` is not a list.
    """
    hotels = payload.get("hotels") or []
    if not isinstance(hotels, list):
        raise ValueError(f"{provider_id} payload field 'hotels' is {type(hotels).__name__}, not a list")
    results: List[RawHotelResult] = []
    for index, hotel in enumerate(hotels):
        if not isinstance(hotel, dict):
            logger.warning("Skipping %s hotel #%s: expected an object, got %s", provider_id, index, type(hotel).__name__)
            continue
        try:
            results.append(build_raw_result(hotel, provider_id=provider_id, params=params))
        except (ValueError, TypeError) as exc:
            logger.warning("Skipping %s hotel #%s: %s", provider_id, index, exc)
    return results


def build_room_offer(room: dict[str, Any], *, currency: str) -> RoomOffer:
    pricing: Dict[str, Any] = room.get("pricing") or {}
    return RoomOffer(
        room_id=str(room.get("id") or room.get("roomId") or ""),
        room_type=_clean_str(room.get("type") or room.get("roomType")) or "STANDARD",
        price=_to_float(pricing.get("total", room.get("price"))) or 0.0,
        currency=_clean_str(pricing.get("currency") or room.get("currency")) or currency,
        description=_clean_str(room.get("description")),
        bed_type=_clean_str(room.get("bedType")),
        max_occupancy=_to_int(room.get("maxOccupancy")),
        available=bool(room.get("available", True)),
        amenities=_extract_amenities(room.get("amenities")),
        metadata=dict(room.get("metadata") or {}),
    )


def build_hotel_details(
    payload: dict[str, Any],
    *,
    provider_id: str,
    params: SearchParams,
) -> HotelDetails:
    hotel_payload = payload.get("hotel") or payload
    hotel = build_raw_result(hotel_payload, provider_id=provider_id, params=params)
    policies: Dict[str, Any] = hotel_payload.get("policies") or {}
    return HotelDetails(
        hotel=hotel,
        rooms=[build_room_offer(room, currency=hotel.currency) for room in hotel_payload.get("rooms") or []],
        check_in_time=_clean_str(policies.get("checkIn")),
        check_out_time=_clean_str(policies.get("checkOut")),
        cancellation_policy=_clean_str(policies.get("cancellation")),
    )
