"""
Keyed in-memory cache with expiry.
"""

import logging
import time
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Entries expire ``ttl_s`` seconds after they were set.

    Expiry is checked on read; ``sweep`` drops every stale entry at once
    and is meant to be called periodically.
    """

    def __init__(self, ttl_s: float = 600.0, clock: Callable[[], float] = time.monotonic):
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_s:
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        now = self._clock()
        stale = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_s]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Swept {len(stale)} expired cache entries")
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
