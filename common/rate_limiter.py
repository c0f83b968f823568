from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Tuple

from common.errors import AppError


class RateLimitError(AppError):
    def __init__(self, data: Dict[str, object]):
        super().__init__("rate_limited", "Rate limit exceeded.", dict(data))


class FixedWindowRateLimiter:
    """
    Fixed-window limiter: at most `limit` events per `window_seconds` per key.
    In-memory only (resets on restart).
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        # key -> (window_start_epoch_sec, count)
        self._state: Dict[str, Tuple[int, int]] = {}

    def check(self, *, key: str, limit: int, window_seconds: int = 60) -> None:
        if limit <= 0:
            return
        with self._lock:
            now = int(self._clock())
            window_start = now - (now % window_seconds)
            prev = self._state.get(key)
            if not prev or prev[0] != window_start:
                self._state[key] = (window_start, 1)
                return
            count = prev[1] + 1
            self._state[key] = (window_start, count)
        if count > limit:
            raise RateLimitError({"key": key, "limit": limit, "window_seconds": window_seconds, "count": count})

    def reset(self) -> None:
        with self._lock:
            self._state.clear()
