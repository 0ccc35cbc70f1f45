"""Search parameters shared by every provider call."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional


class SearchValidationError(ValueError):
    """Raised when search input is incomplete or inconsistent."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _parse_date(value: Any, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise SearchValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", field=field) from exc


def _parse_int(value: Any, field: str, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SearchValidationError(f"{field} must be an integer", field=field) from exc


def _parse_float(value: Any, field: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise SearchValidationError(f"{field} must be a number", field=field) from exc


@dataclass(frozen=True)
class SearchParams:
    city_code: str
    check_in: date
    check_out: date
    adults: int = 2
    rooms: int = 1
    currency: str = "USD"
    hotel_name: Optional[str] = None
    radius_km: Optional[float] = None

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def validate(self, *, today: Optional[date] = None) -> "SearchParams":
        """Raise ``SearchValidationError`` unless the parameters describe a bookable stay."""
        if not self.city_code or not self.city_code.strip():
            raise SearchValidationError("city_code is required", field="city_code")
        today = today or date.today()
        if self.check_in < today:
            raise SearchValidationError("Check-in date must be today or in the future", field="check_in")
        if self.check_out <= self.check_in:
            raise SearchValidationError("Check-out date must be after check-in date", field="check_out")
        if self.adults < 1:
            raise SearchValidationError("At least one adult is required", field="adults")
        if self.rooms < 1:
            raise SearchValidationError("At least one room is required", field="rooms")
        return self

    def to_payload(self) -> dict:
        return {
            "cityCode": self.city_code,
            "checkInDate": self.check_in.isoformat(),
            "checkOutDate": self.check_out.isoformat(),
            "adults": self.adults,
            "roomQuantity": self.rooms,
            "currency": self.currency,
            **({"hotelName": self.hotel_name} if self.hotel_name else {}),
            **({"radius": self.radius_km, "radiusUnit": "KM"} if self.radius_km else {}),
        }

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        *,
        default_adults: int = 2,
        default_rooms: int = 1,
        default_currency: str = "USD",
    ) -> "SearchParams":
        """Build parameters from a JSON-shaped request body (camelCase or snake_case)."""
        city_code = _pick(data, "cityCode", "city_code")
        check_in = _pick(data, "checkInDate", "checkIn", "check_in")
        check_out = _pick(data, "checkOutDate", "checkOut", "check_out")
        missing = [
            name
            for name, value in (("cityCode", city_code), ("checkInDate", check_in), ("checkOutDate", check_out))
            if value is None
        ]
        if missing:
            raise SearchValidationError(f"Missing required parameters: {', '.join(missing)}", field=missing[0])
        return cls(
            city_code=str(city_code).strip().upper(),
            check_in=_parse_date(check_in, "check_in"),
            check_out=_parse_date(check_out, "check_out"),
            adults=_parse_int(_pick(data, "adults"), "adults", default_adults),
            rooms=_parse_int(_pick(data, "roomQuantity", "rooms"), "rooms", default_rooms),
            currency=str(_pick(data, "currency") or default_currency).upper(),
            hotel_name=_pick(data, "hotelName", "hotel_name"),
            radius_km=_parse_float(_pick(data, "radius", "radius_km"), "radius_km"),
        )
