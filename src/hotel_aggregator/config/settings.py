"""Runtime configuration for the aggregator.

Relies on pydantic-settings so that environment variables (prefixed with ``AGGREGATOR_``)
can override defaults. See `.env.example` for common values.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class ProviderEndpoint(BaseModel):
    """Connection details for one HTTP inventory provider."""

    name: str
    base_url: str
    api_key: Optional[str] = None
    timeout_s: Optional[float] = None


class Settings(BaseSettings):
    """Captures runtime configuration for the aggregator."""

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("data/logs"))

    sqlite_path: Path = Field(
        default=Path("data/aggregator.sqlite3"),
        description="SQLite file holding canonical hotels, provider mappings and the price cache",
    )
    sqlite_busy_timeout_ms: int = Field(default=2000, description="SQLite busy timeout (ms) for locks")
    sqlite_journal_mode: Optional[str] = Field(default="wal")
    sqlite_synchronous: Optional[str] = Field(default="normal")

    provider_timeout_s: float = Field(
        default=15.0,
        description="Upper bound for a single provider call before the fan-out gives up on it",
    )
    provider_endpoints: Tuple[ProviderEndpoint, ...] = Field(
        default=(),
        description="JSON list of {name, base_url, api_key} objects, in registration order",
    )

    match_radius_km: float = Field(default=0.5, description="Candidate search radius for geo matching")
    match_accept_threshold: float = Field(
        default=0.90, description="Minimum combined score to accept a geo/name match"
    )
    match_advertise_threshold: float = Field(
        default=0.99, description="Minimum confidence for a listing to be advertised"
    )
    match_name_weight: float = Field(
        default=0.6, description="Weight of name similarity in the combined match score"
    )

    price_cache_ttl_s: int = Field(default=600, description="Hard expiry of price cache entries")
    price_cache_freshness_s: int = Field(
        default=300, description="Age under which a cached price is served without a live fetch"
    )
    offer_cache_ttl_s: int = Field(default=900, description="Lifetime of a cached room offer")

    kv_rest_api_url: Optional[str] = Field(
        default=None, description="REST key-value service URL; in-process cache is used when unset"
    )
    kv_rest_api_token: Optional[str] = None

    default_currency: str = Field(default="USD")
    default_adults: int = Field(default=2)
    default_rooms: int = Field(default=1)

    model_config = SettingsConfigDict(
        env_prefix="AGGREGATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
        validate_assignment=True,
    )

    @field_validator("log_dir", "sqlite_path", mode="before")
    def _expand_path(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        return Path(value).expanduser()

    @field_validator("provider_endpoints", mode="before")
    def _parse_provider_endpoints(cls, value: object) -> Tuple[object, ...]:
        if value in (None, "", ()):
            return ()
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as exc:  # noqa: TRY003
                raise ValueError("provider_endpoints must be valid JSON") from exc
        if isinstance(value, dict):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise TypeError("provider_endpoints must be a sequence of endpoint definitions")
        return tuple(value)

    @field_validator("match_accept_threshold", "match_advertise_threshold", "match_name_weight")
    def _validate_unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("matching thresholds and weights must lie within [0, 1]")
        return value

    @field_validator("provider_timeout_s", "match_radius_km")
    def _validate_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    def ensure_directories(self) -> None:
        """Create directories that must exist at runtime."""
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)

    def kv_rest_configured(self) -> bool:
        return bool(self.kv_rest_api_url and self.kv_rest_api_token)

    def provider_names(self) -> list[str]:
        return [endpoint.name for endpoint in self.provider_endpoints]
