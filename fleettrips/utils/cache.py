"""
Small thread-safe in-memory cache with per-entry expiry.
"""

import threading
import time
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class TtlCache(Generic[T]):
    """
    Key/value cache whose entries expire `ttl_seconds` after being set.

    Expired entries are evicted when read and swept on every write.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: Dict[Any, Tuple[T, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Any) -> Optional[T]:
        with self._lock:
            hit = self._store.get(key)
            if hit is None:
                return None
            value, expires_at = hit
            if self._clock() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: Any, value: T) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._store.items() if now > expires_at]
            for k in expired:
                del self._store[k]
            self._store[key] = (value, now + self.ttl_seconds)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
