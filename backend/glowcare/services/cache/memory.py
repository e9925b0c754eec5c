"""In-process cache backend (development, tests, Redis outages)."""
from __future__ import annotations

import time
from threading import Lock
from typing import Dict, Optional, Tuple

from glowcare.services.cache.base import KeyValueCache

SWEEP_EVERY = 256


class InMemoryKeyValueCache(KeyValueCache):
    """
    TTL dictionary guarded by a lock.

    Expired entries are dropped when read and swept every ``SWEEP_EVERY``
    writes. Past ``max_entries`` the oldest writes are evicted first.
    """

    backend_kind = "memory"

    def __init__(self, max_entries: int = 10_000) -> None:
        self._lock = Lock()
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}
        self._max_entries = max(max_entries, 1)
        self._writes = 0

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            record = self._items.get(key)
            if not record:
                return None
            value, expires_at = record
            if expires_at is not None and time.monotonic() >= expires_at:
                self._items.pop(key, None)
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = time.monotonic()
        expires_at = None if ttl_seconds <= 0 else now + ttl_seconds
        with self._lock:
            # Re-insert so dict order follows write order.
            self._items.pop(key, None)
            self._items[key] = (value, expires_at)
            self._writes += 1
            if self._writes % SWEEP_EVERY == 0 or len(self._items) > self._max_entries:
                self._sweep(now)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._items.items() if expires_at is not None and now >= expires_at]
        for key in expired:
            del self._items[key]
        while len(self._items) > self._max_entries:
            del self._items[next(iter(self._items))]
