"""Thread-safe LRU cache with a per-entry time to live."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

DEFAULT_CAPACITY = 128
_SHARED_CAPACITY = 256
_SHARED_TTL = 3600.0


@dataclass
class _Entry:
    value: Any
    expires_at: float


class FetchCache:
    """LRU cache keyed by URL or video id; entries expire after ``ttl`` seconds."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl: float = _SHARED_TTL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            capacity = DEFAULT_CAPACITY
        self.capacity = capacity
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._items: "OrderedDict[str, _Entry]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._items[key]
                return None
            self._items.move_to_end(key)
            return entry.value

    def put(self, key: str, value: Any) -> None:
        """Insert or refresh an entry, evicting the least recently used one if full."""
        with self._lock:
            expires_at = self._clock() + self.ttl
            if key in self._items:
                self._items[key] = _Entry(value, expires_at)
                self._items.move_to_end(key)
                return
            self._items[key] = _Entry(value, expires_at)
            if len(self._items) > self.capacity:
                self._items.popitem(last=False)

    def invalidate(self, key: str) -> None:
        """Drop the entry for key, if any."""
        with self._lock:
            self._items.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


_default_cache = FetchCache(_SHARED_CAPACITY, _SHARED_TTL)


def configure_fetch_cache(enabled: bool, ttl_seconds: int) -> None:
    """Replace the shared cache according to configuration values."""
    global _default_cache
    if not enabled:
        _default_cache = FetchCache(1, 0.0)
        return
    ttl = float(ttl_seconds)
    if ttl <= 0:
        ttl = _SHARED_TTL
    _default_cache = FetchCache(_SHARED_CAPACITY, ttl)


def default_fetch_cache() -> FetchCache:
    """The shared cache used for video metadata lookups."""
    return _default_cache