"""In-process TTL cache with an injectable clock.

A cache instance is created by whoever needs memoisation (the composition
root in main.py) and passed explicitly into the components that use it.
There is no module-level cache.
"""

import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from getcare.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class CacheStats:
    """Statistics for cache operations."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: float


class TTLCache:
    """Bounded key/value cache where every entry expires after its TTL.

    Args:
        default_ttl: Seconds an entry lives when set() is given no ttl.
        max_entries: Oldest entries are evicted once this size is exceeded.
        clock: Returns the current time in seconds. Defaults to time.monotonic.
    """

    def __init__(
        self,
        default_ttl: float = 300.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _Entry[Any]] = OrderedDict()
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self.stats.misses += 1
            return None

        self.stats.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value for ttl seconds (default_ttl when omitted)."""
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError("ttl must be positive")

        self._entries.pop(key, None)
        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            self.stats.evictions += 1

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def clear_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Expired cache entries cleared", extra={"count": len(expired)})
        return len(expired)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """Return the cached value or await factory() and cache its result.

        A None result from the factory is returned but not cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached  # type: ignore[no-any-return]

        value = await factory()
        if value is not None:
            self.set(key, value, ttl)
        return value
