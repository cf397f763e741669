"""
TTL Cache.

Small time-bounded cache shared across conversations. Entries are
replaced whole, so readers always see a complete value or a miss.
"""

from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Key/value cache with a fixed time-to-live per entry.

    Usage:
        cache: TTLCache[AgentBundle] = TTLCache(ttl_seconds=120)
        cache.set(("info", "es", 7), bundle)
        bundle = cache.get(("info", "es", 7))  # None once expired
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of each entry
            clock: Monotonic time source (injectable for tests)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable) -> Optional[V]:
        """Return the cached value, or None if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: Hashable, value: V) -> None:
        """Store a value for ttl_seconds, dropping entries that have expired."""
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]
        self._entries[key] = (now + self.ttl_seconds, value)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
