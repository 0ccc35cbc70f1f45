"""Inventory provider clients."""

from .base import HotelProvider, ProviderError, ProviderRegistry, UnknownProviderError
from .http_client import HttpHotelProvider, build_registry

__all__ = [
    "HotelProvider",
    "HttpHotelProvider",
    "ProviderError",
    "ProviderRegistry",
    "UnknownProviderError",
    "build_registry",
]
