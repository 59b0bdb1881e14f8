"""Process-wide in-memory cache with per-entry time-to-live."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class CacheStore:
    """Thread-safe key/value store used for cache-aside lookups.

    Expired entries are dropped lazily by the ``get`` that finds them, so a
    caller cannot tell an expired key from one that was never set. There is
    no size bound; entry volume is bounded by request fan-out.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[Any, bool]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False
            if not entry.is_valid(now):
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key)
                return None, False
            return entry.value, True

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds, replacing any entry."""

        if ttl <= 0:
            raise ValueError("ttl must be positive")
        entry = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)
        with self._lock:
            self._entries[key] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@lru_cache(maxsize=1)
def get_cache() -> CacheStore:
    """Return the cache shared by every request in this process."""

    return CacheStore()
