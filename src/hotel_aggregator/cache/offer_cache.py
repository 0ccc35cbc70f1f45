"""Server-side snapshots of room offers between room selection and payment.

Providers regenerate offer ids on every search, so the booking flow carries an opaque key
minted here instead of the provider's id.
"""
from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from hotel_aggregator.hotels.models import (
    CachedOffer,
    OfferHotelInfo,
    OfferRoom,
    OfferSearchContext,
    RoomOffer,
)

from .backends import KeyValueBackend

CACHE_PREFIX = "offer"
DEFAULT_TTL_S = 900

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OfferCache:
    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        ttl_s: int = DEFAULT_TTL_S,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._backend = backend
        self.ttl_s = ttl_s
        self._clock = clock or _utc_now

    def _mint_key(self, provider_id: str, provider_hotel_id: str, room_id: str, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        nonce = secrets.token_hex(4)
        return f"{CACHE_PREFIX}:{provider_id}:{provider_hotel_id}:{room_id}:{millis}:{nonce}"

    async def put(
        self,
        provider_id: str,
        provider_hotel_id: str,
        room: Union[OfferRoom, RoomOffer],
        search_context: OfferSearchContext,
        hotel_info: OfferHotelInfo,
    ) -> str:
        """Snapshot ``room`` and return the key the booking flow should carry."""
        if isinstance(room, RoomOffer):
            room = OfferRoom.from_room_offer(room)
        now = self._clock()
        key = self._mint_key(provider_id, provider_hotel_id, room.room_id, now)
        offer = CachedOffer(
            cache_key=key,
            provider_id=provider_id,
            provider_hotel_id=provider_hotel_id,
            room=room,
            check_in=search_context.check_in,
            check_out=search_context.check_out,
            adults=search_context.adults,
            rooms=search_context.rooms,
            hotel_name=hotel_info.name,
            hotel_address=hotel_info.address,
            cached_at=now,
            expires_at=now + timedelta(seconds=self.ttl_s),
        )
        await self._backend.set(key, json.dumps(offer.to_dict(), separators=(",", ":")), self.ttl_s)
        logger.debug("Cached offer %s (room %s, %s %s)", key, room.room_id, room.price, room.currency)
        return key

    async def get(self, cache_key: str) -> Optional[CachedOffer]:
        try:
            raw = await self._backend.get(cache_key)
        except Exception as exc:
            logger.warning("Offer cache read failed for %s: %s", cache_key, exc)
            return None
        if raw is None:
            logger.debug("Offer cache miss: %s", cache_key)
            return None
        try:
            offer = CachedOffer.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding undecodable cached offer %s: %s", cache_key, exc)
            return None
        if self._clock() >= offer.expires_at:
            logger.debug("Cached offer %s expired at %s", cache_key, offer.expires_at.isoformat())
            await self.delete(cache_key)
            return None
        return offer

    async def delete(self, cache_key: str) -> None:
        try:
            await self._backend.delete(cache_key)
        except Exception as exc:
            logger.warning("Offer cache delete failed for %s: %s", cache_key, exc)
