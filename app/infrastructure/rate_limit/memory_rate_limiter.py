from __future__ import annotations

import threading
import time
from typing import Callable

from app.application.ports.rate_limiter import RateLimiterPort


class MemoryRateLimiter(RateLimiterPort):
    """Fixed-window counter per key, local to this process."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._monotonic = monotonic
        self._windows: dict[str, tuple[float, int]] = {}
        self._next_sweep = monotonic() + window_seconds
        self._lock = threading.Lock()

    def check(self, key: str) -> bool:
        now = self._monotonic()
        with self._lock:
            if now >= self._next_sweep:
                self._evict_expired(now)
            started, count = self._windows.get(key, (now, 0))
            if now - started >= self._window_seconds:
                started, count = now, 0
            count += 1
            self._windows[key] = (started, count)
            return count <= self._max_requests

    def _evict_expired(self, now: float) -> None:
        # At most one sweep per window
        expired = [key for key, (started, _) in self._windows.items() if now - started >= self._window_seconds]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self._window_seconds
