from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float
    stored_at: float


class TTLCache(Generic[K, V]):
    """
    Small in-memory TTL cache with a size cap (oldest entry evicted first).

    Exchange metadata is large and changes rarely, so the client keeps it here
    instead of downloading it for every quantity calculation.
    """

    def __init__(self, *, max_items: int = 256, clock: Callable[[], float] = time.monotonic) -> None:
        # Shared between the scheduler thread and request handlers.
        self._lock = threading.RLock()
        self._max_items = max(1, int(max_items))
        self._clock = clock
        self._data: Dict[K, _Entry[V]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            e = self._data.get(key)
            if e is None:
                return None
            if e.expires_at <= self._clock():
                self._data.pop(key, None)
                return None
            return e.value

    def set(self, key: K, value: V, ttl_seconds: float) -> None:
        with self._lock:
            now = self._clock()
            self._data[key] = _Entry(value=value, expires_at=now + max(0.0, float(ttl_seconds)), stored_at=now)
            self._evict_if_needed()

    def get_or_load(self, key: K, loader: Callable[[], V], ttl_seconds: float) -> V:
        """
        Return the cached value or call `loader` and cache its result.
        Loader errors propagate and nothing is cached.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        self.set(key, value, ttl_seconds)
        return value

    def delete(self, key: K) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def _evict_if_needed(self) -> None:
        overflow = len(self._data) - self._max_items
        if overflow <= 0:
            return
        oldest = sorted(self._data.items(), key=lambda kv: kv[1].stored_at)
        for k, _ in oldest[:overflow]:
            self._data.pop(k, None)
