"""Price and offer caches."""

from .backends import KeyValueBackend, KeyValueError, MemoryBackend, RestKeyValueBackend, build_kv_backend
from .offer_cache import OfferCache
from .price_cache import PriceCache

__all__ = [
    "KeyValueBackend",
    "KeyValueError",
    "MemoryBackend",
    "OfferCache",
    "PriceCache",
    "RestKeyValueBackend",
    "build_kv_backend",
]
