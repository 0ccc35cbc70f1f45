"""Resolve provider results to canonical hotel identities."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, List, Optional

from hotel_aggregator.hotels.models import (
    CanonicalHotel,
    MatchedResult,
    MatchResult,
    ProviderMapping,
    RawHotelResult,
)

from .similarity import location_score, name_similarity

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.config.settings import Settings
    from hotel_aggregator.storage.sqlite_store import SqliteStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchThresholds:
    accept: float = 0.90
    advertise: float = 0.99
    radius_km: float = 0.5
    name_weight: float = 0.6
    max_candidates: int = 10

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MatchThresholds":
        return cls(
            accept=settings.match_accept_threshold,
            advertise=settings.match_advertise_threshold,
            radius_km=settings.match_radius_km,
            name_weight=settings.match_name_weight,
        )


class CanonicalMatcher:
    """Map each provider result onto one canonical hotel, creating records when needed.

    Resolution order: a stored provider mapping, then an exact cross-reference id, then the
    best name/location candidate inside the search radius, then a brand-new record when the
    result has coordinates. Results without coordinates that match nothing stay unmatched.
    """

    def __init__(self, store: "SqliteStore", *, thresholds: Optional[MatchThresholds] = None) -> None:
        self._store = store
        self.thresholds = thresholds or MatchThresholds()
        self._create_lock = asyncio.Lock()

    def _result(
        self,
        canonical_id: str,
        confidence: float,
        method: str,
        *,
        name_score: Optional[float] = None,
        location_score: Optional[float] = None,
        candidates: int = 0,
    ) -> MatchResult:
        return MatchResult(
            canonical_id=canonical_id,
            confidence=confidence,
            should_advertise=confidence >= self.thresholds.advertise,
            method=method,
            name_score=name_score,
            location_score=location_score,
            candidates=candidates,
        )

    async def match(self, hotel: RawHotelResult) -> MatchResult:
        mapped = await self._match_mapping(hotel)
        if mapped is not None:
            return mapped

        found = await self._match_existing(hotel)
        if found is not None:
            await self._remember(hotel, found)
            return found

        if not hotel.has_coordinates:
            logger.debug(
                "No match for %s/%s and no coordinates to seed a record",
                hotel.provider_id,
                hotel.provider_hotel_id,
            )
            return MatchResult.no_match()

        async with self._create_lock:
            # another task may have created the record while we waited
            found = await self._match_existing(hotel)
            if found is not None:
                await self._remember(hotel, found)
                return found
            try:
                canonical = await self._store.create_canonical_hotel(hotel)
            except Exception:
                logger.exception(
                    "Failed to create canonical hotel for %s/%s",
                    hotel.provider_id,
                    hotel.provider_hotel_id,
                )
                return MatchResult.no_match()

        logger.info(
            "Created canonical hotel %s for %s/%s (%s)",
            canonical.id,
            hotel.provider_id,
            hotel.provider_hotel_id,
            hotel.name,
        )
        return self._result(canonical.id, 1.0, "created")

    async def match_all(self, hotels: Iterable[RawHotelResult]) -> List[MatchedResult]:
        items = list(hotels)
        outcomes = await asyncio.gather(
            *(self.match(hotel) for hotel in items),
            return_exceptions=True,
        )
        matched: List[MatchedResult] = []
        for hotel, outcome in zip(items, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    "Matching failed for %s/%s: %s",
                    getattr(hotel, "provider_id", "?"),
                    getattr(hotel, "provider_hotel_id", "?"),
                    outcome,
                )
                outcome = MatchResult.no_match()
            matched.append(MatchedResult(hotel=hotel, match=outcome))
        return matched

    async def _match_mapping(self, hotel: RawHotelResult) -> Optional[MatchResult]:
        found = await self._store.find_mapping(hotel.provider_id, hotel.provider_hotel_id)
        if found is None:
            return None
        canonical_id, mapping = found
        return MatchResult(
            canonical_id=canonical_id,
            confidence=mapping.match_confidence,
            should_advertise=mapping.include_in_ads,
            method="mapping",
        )

    async def _match_existing(self, hotel: RawHotelResult) -> Optional[MatchResult]:
        if hotel.cross_reference_id:
            canonical = await self._store.find_by_cross_reference(hotel.cross_reference_id)
            if canonical is not None:
                return self._result(canonical.id, 1.0, "cross_reference")
        if hotel.has_coordinates:
            return await self._match_geo(hotel)
        return None

    async def _match_geo(self, hotel: RawHotelResult) -> Optional[MatchResult]:
        thresholds = self.thresholds
        candidates = await self._store.find_candidates_near(
            hotel.latitude,  # type: ignore[arg-type]
            hotel.longitude,  # type: ignore[arg-type]
            thresholds.radius_km,
            limit=thresholds.max_candidates,
        )
        best: Optional[tuple[float, float, float, CanonicalHotel]] = None
        for candidate, distance in candidates:
            name_score = name_similarity(hotel.name, candidate.name)
            loc_score = location_score(distance, thresholds.radius_km)
            score = thresholds.name_weight * name_score + (1.0 - thresholds.name_weight) * loc_score
            if best is None or score > best[0]:
                best = (score, name_score, loc_score, candidate)
        if best is None:
            return None
        score, name_score, loc_score, candidate = best
        if score < thresholds.accept:
            logger.debug(
                "Best candidate %s for %s scored %.3f (< %.2f)",
                candidate.id,
                hotel.name,
                score,
                thresholds.accept,
            )
            return None
        return self._result(
            candidate.id,
            min(score, 1.0),
            "geo",
            name_score=name_score,
            location_score=loc_score,
            candidates=len(candidates),
        )

    async def _remember(self, hotel: RawHotelResult, result: MatchResult) -> None:
        if result.canonical_id is None:
            return
        mapping = ProviderMapping(
            provider_id=hotel.provider_id,
            provider_hotel_id=hotel.provider_hotel_id,
            match_confidence=result.confidence,
            match_method=result.method,
            include_in_ads=result.should_advertise,
        )
        try:
            await self._store.upsert_provider_mapping(result.canonical_id, mapping)
        except Exception as exc:
            logger.warning(
                "Could not persist mapping %s/%s -> %s: %s",
                hotel.provider_id,
                hotel.provider_hotel_id,
                result.canonical_id,
                exc,
            )
