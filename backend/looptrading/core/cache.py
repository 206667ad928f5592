"""
In-process TTL cache.

Used by the market data gateway and the news service. Entries live on the
event-loop thread only, so no locking is done here.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


def cache_key(*parts: Any) -> str:
    """Build a colon separated key, e.g. ``market:quote:AAPL``."""
    return ":".join(str(p) for p in parts)


class TTLCache:
    """Key/value store with a per-entry time to live (seconds)."""

    def __init__(self, default_ttl: float = 900, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            # Lazy eviction on read
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_many(self, keys: list[str]) -> int:
        return sum(1 for key in keys if self.delete(key))

    def clear(self) -> None:
        self._entries.clear()

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: Optional[float] = None,
    ) -> T:
        """Return the cached value or compute, store and return it."""
        cached = self.get(key)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached
        value = await factory()
        if value is not None:
            self.set(key, value, ttl)
        return value
