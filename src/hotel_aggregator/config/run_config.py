"""TOML run profiles for manual searches from the command line."""
from __future__ import annotations

import re
import tomllib
from datetime import date, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field, field_validator

from hotel_aggregator.search.params import SearchParams, SearchValidationError

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.config.settings import Settings

_RELATIVE_CHECK_IN = re.compile(r"^(?P<count>\d+)\s*(?P<unit>[dDwW])$")


class SearchSection(BaseModel):
    """Search defaults decoded from the profile."""

    city_code: Optional[str] = None
    check_in: Optional[str] = Field(
        default=None, description="ISO 8601 date or relative offset such as '+14d'"
    )
    nights: int = Field(default=1, ge=1)
    adults: Optional[int] = Field(default=None, ge=1)
    rooms: Optional[int] = Field(default=None, ge=1)
    currency: Optional[str] = None
    hotel_name: Optional[str] = None
    provider: Optional[str] = Field(default=None, description="Restrict the search to one provider")

    @field_validator("city_code", "hotel_name", "provider", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class MatchingSection(BaseModel):
    radius_km: Optional[float] = Field(default=None, gt=0)
    accept_threshold: Optional[float] = Field(default=None, ge=0, le=1)
    advertise_threshold: Optional[float] = Field(default=None, ge=0, le=1)
    name_weight: Optional[float] = Field(default=None, ge=0, le=1)


class StorageSection(BaseModel):
    sqlite_path: Optional[str] = Field(default=None, description="Override the SQLite file path")
    sqlite_busy_timeout_ms: Optional[int] = Field(default=None, ge=0)
    sqlite_journal_mode: Optional[str] = None
    sqlite_synchronous: Optional[str] = None


class RunConfig(BaseModel):
    """Top-level profile decoded from TOML."""

    profile: str = Field(default="default", description="Human label used for logging")
    log_level: Optional[str] = None
    provider_timeout_s: Optional[float] = Field(default=None, gt=0)
    search: SearchSection = Field(default_factory=SearchSection)
    matching: MatchingSection = Field(default_factory=MatchingSection)
    storage: Optional[StorageSection] = None

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        data = tomllib.loads(path.read_text())
        return cls.model_validate(data)

    def apply_to(self, settings: "Settings", *, base_dir: Optional[Path] = None) -> None:
        """Apply overrides to an existing Settings instance."""
        if self.log_level:
            settings.log_level = self.log_level
        if self.provider_timeout_s is not None:
            settings.provider_timeout_s = self.provider_timeout_s
        self._apply_search_defaults(settings)
        self._apply_matching(settings)
        self._apply_storage(settings, base_dir)

    def _apply_search_defaults(self, settings: "Settings") -> None:
        search = self.search
        if search.adults is not None:
            settings.default_adults = search.adults
        if search.rooms is not None:
            settings.default_rooms = search.rooms
        if search.currency:
            settings.default_currency = search.currency.upper()

    def _apply_matching(self, settings: "Settings") -> None:
        matching = self.matching
        if matching.radius_km is not None:
            settings.match_radius_km = matching.radius_km
        if matching.accept_threshold is not None:
            settings.match_accept_threshold = matching.accept_threshold
        if matching.advertise_threshold is not None:
            settings.match_advertise_threshold = matching.advertise_threshold
        if matching.name_weight is not None:
            settings.match_name_weight = matching.name_weight

    def _apply_storage(self, settings: "Settings", base_dir: Optional[Path]) -> None:
        storage = self.storage
        if not storage:
            return
        if storage.sqlite_path:
            settings.sqlite_path = _resolve_path(storage.sqlite_path, base_dir)
        if storage.sqlite_busy_timeout_ms is not None:
            settings.sqlite_busy_timeout_ms = storage.sqlite_busy_timeout_ms
        if storage.sqlite_journal_mode is not None:
            settings.sqlite_journal_mode = storage.sqlite_journal_mode
        if storage.sqlite_synchronous is not None:
            settings.sqlite_synchronous = storage.sqlite_synchronous

    def search_params(self, settings: "Settings", *, today: Optional[date] = None) -> SearchParams:
        """Build search parameters from the profile, falling back to settings defaults."""
        search = self.search
        if not search.city_code:
            raise SearchValidationError("Run profile has no search.city_code", field="city_code")
        if not search.check_in:
            raise SearchValidationError("Run profile has no search.check_in", field="check_in")
        try:
            check_in = parse_check_in(search.check_in, today=today)
        except ValueError as exc:
            raise SearchValidationError(str(exc), field="check_in") from exc
        return SearchParams(
            city_code=search.city_code.strip().upper(),
            check_in=check_in,
            check_out=check_in + timedelta(days=search.nights),
            adults=search.adults or settings.default_adults,
            rooms=search.rooms or settings.default_rooms,
            currency=(search.currency or settings.default_currency).upper(),
            hotel_name=search.hotel_name,
        )


def _resolve_path(raw: str, base_dir: Optional[Path]) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute() and base_dir:
        return (base_dir / path).resolve()
    return path


def parse_check_in(value: str, *, today: Optional[date] = None) -> date:
    """Parse an ISO date, ``today``, or a relative offset like ``+14d``/``+2w``."""
    today = today or date.today()
    text = value.strip()
    lowered = text.lower()
    if lowered == "today":
        return today
    if lowered.startswith("today+"):
        lowered = f"+{lowered.split('+', 1)[1]}"
    if lowered.startswith("+"):
        match = _RELATIVE_CHECK_IN.match(lowered[1:])
        if not match:
            raise ValueError(f"Unsupported check_in relative format '{value}'. Use forms like '+14d' or '+2w'.")
        count = int(match.group("count"))
        if match.group("unit").lower() == "w":
            return today + timedelta(weeks=count)
        return today + timedelta(days=count)
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(
            f"Invalid check_in date '{value}'. Provide ISO format (YYYY-MM-DD) or a relative offset."
        ) from exc


__all__ = ["RunConfig", "parse_check_in"]
