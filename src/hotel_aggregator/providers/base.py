"""Provider client contract and registry."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional

from hotel_aggregator.hotels.models import CancellationResult, HotelDetails, RawHotelResult

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.search.params import SearchParams

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised by provider clients when an upstream call fails or returns unusable data."""

    def __init__(self, provider: str, code: str, message: str) -> None:
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.code = code


class UnknownProviderError(KeyError):
    """Raised when a caller targets a provider that is not registered."""

    def __init__(self, name: str, known: Iterable[str]) -> None:
        super().__init__(f"Provider '{name}' is not registered. Known providers: {', '.join(known) or 'none'}")
        self.name = name


class HotelProvider(ABC):
    """One inventory source. Every call may fail independently."""

    name: str

    @abstractmethod
    async def search(self, params: SearchParams) -> List[RawHotelResult]:
        """Return this provider's hotels for the search."""

    @abstractmethod
    async def get_details(self, provider_hotel_id: str, params: SearchParams) -> HotelDetails:
        """Return rooms and policies for one hotel."""

    @abstractmethod
    async def cancel_booking(self, provider_booking_id: str) -> CancellationResult:
        """Cancel a booking previously made with this provider."""

    async def close(self) -> None:
        return None


class ProviderRegistry:
    """Name → client mapping that remembers registration order."""

    def __init__(self, providers: Optional[Iterable[HotelProvider]] = None) -> None:
        self._providers: Dict[str, HotelProvider] = {}
        for provider in providers or ():
            self.register(provider)

    def register(self, provider: HotelProvider) -> None:
        if provider.name in self._providers:
            logger.warning("Replacing already registered provider '%s'", provider.name)
        self._providers[provider.name] = provider
        logger.info("Registered provider '%s'", provider.name)

    def get(self, name: str) -> HotelProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise UnknownProviderError(name, self._providers) from None

    def names(self) -> List[str]:
        return list(self._providers)

    def __iter__(self) -> Iterator[HotelProvider]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    async def close(self) -> None:
        for provider in self:
            try:
                await provider.close()
            except Exception:
                logger.debug("Failed to close provider %s", provider.name, exc_info=True)
