"""
Cache store used to persist the pattern dataset between restarts.

Hosts plug in their own backend (Redis, memcached, a framework cache) by
implementing CacheStore. MemoryCache is the in-process default.
"""

import threading
import time
from typing import Protocol


class CacheStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes, ttl: int) -> None: ...


class MemoryCache:
    """Dict-backed cache with lazy expiry."""

    def __init__(self):
        self._store: dict[str, tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        now = time.time()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= now:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: bytes, ttl: int) -> None:
        with self._lock:
            self._store[key] = (value, time.time() + ttl)
