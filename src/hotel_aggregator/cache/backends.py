"""Key/value stores with per-key expiry backing the offer cache."""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

import httpx

if TYPE_CHECKING:  # pragma: no cover
    from hotel_aggregator.config.settings import Settings

logger = logging.getLogger(__name__)


class KeyValueError(RuntimeError):
    """Raised when the backing key/value service cannot complete a command."""


class KeyValueBackend(ABC):
    @abstractmethod
    async def set(self, key: str, value: str, ttl_s: int) -> None:
        """Store ``value`` under ``key`` for ``ttl_s`` seconds."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when missing or expired."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    async def close(self) -> None:
        return None


class MemoryBackend(KeyValueBackend):
    """Process-local dict. Expired entries are evicted on read and by a periodic sweep on write.

    Entries do not survive a restart.
    """

    def __init__(
        self,
        *,
        clock: Optional[Callable[[], float]] = None,
        sweep_interval_s: float = 60.0,
    ) -> None:
        self._clock = clock or time.monotonic
        self._items: Dict[str, Tuple[str, float]] = {}
        self._sweep_interval_s = sweep_interval_s
        self._last_sweep = self._clock()

    async def set(self, key: str, value: str, ttl_s: int) -> None:
        now = self._clock()
        if now - self._last_sweep >= self._sweep_interval_s:
            self._sweep(now)
        self._items[key] = (value, now + ttl_s)

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._items.items() if now >= expires_at]
        for key in expired:
            del self._items[key]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %s expired key(s) from memory backend", len(expired))

    async def get(self, key: str) -> Optional[str]:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            self._items.pop(key, None)
            return None
        return value

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class RestKeyValueBackend(KeyValueBackend):
    """Client for Redis-compatible REST services that accept JSON command arrays."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "User-Agent": "hotel-aggregator/0.1.0",
            },
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _command(self, *args: Any) -> Any:
        command: List[str] = [str(arg) for arg in args]
        logger.debug("KV command %s %s", command[0], command[1] if len(command) > 1 else "")
        try:
            response = await self._client.post("/", json=command)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise KeyValueError(f"{command[0]} failed: {exc}") from exc
        except ValueError as exc:
            raise KeyValueError(f"{command[0]} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise KeyValueError(f"{command[0]} returned {type(payload).__name__}")
        if payload.get("error"):
            raise KeyValueError(f"{command[0]} failed: {payload['error']}")
        return payload.get("result")

    async def set(self, key: str, value: str, ttl_s: int) -> None:
        await self._command("SET", key, value, "EX", int(ttl_s))

    async def get(self, key: str) -> Optional[str]:
        result = await self._command("GET", key)
        if result is None:
            return None
        return str(result)

    async def delete(self, key: str) -> None:
        await self._command("DEL", key)


def build_kv_backend(settings: "Settings") -> KeyValueBackend:
    """Use the REST service when it is configured, otherwise an in-process dict."""
    if settings.kv_rest_configured():
        logger.info("Offer cache backed by REST KV service at %s", settings.kv_rest_api_url)
        return RestKeyValueBackend(settings.kv_rest_api_url, settings.kv_rest_api_token)
    logger.info("Offer cache backed by in-memory store; entries will not survive a restart")
    return MemoryBackend()
