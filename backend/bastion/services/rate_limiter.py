"""In-memory sliding window rate limiter."""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from datetime import timedelta
from typing import Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class RateLimiter(Generic[K]):
    """Allow at most ``limit`` actions per key within a sliding ``window``.

    Timestamps older than the window are dropped when the key is touched;
    ``prune`` reclaims keys nobody touched for a whole window.
    """

    def __init__(
        self,
        limit: int,
        window: timedelta,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._limit = limit
        self._window = window.total_seconds()
        self._clock = clock
        self._requests: dict[K, deque[float]] = {}
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    def check_and_increment(self, key: K) -> bool:
        """Record an action for ``key`` and return whether it is allowed."""

        now = self._clock()
        with self._lock:
            timestamps = self._requests.get(key)
            if timestamps is None:
                timestamps = self._requests[key] = deque()
            self._drop_expired(timestamps, now)
            if len(timestamps) >= self._limit:
                logger.debug("Rate limit reached for %s (%d/%d)", key, len(timestamps), self._limit)
                return False
            timestamps.append(now)
            return True

    def remaining(self, key: K) -> int:
        now = self._clock()
        with self._lock:
            timestamps = self._requests.get(key)
            if timestamps is None:
                return self._limit
            self._drop_expired(timestamps, now)
            return max(0, self._limit - len(timestamps))

    def prune(self) -> int:
        """Forget keys whose whole history fell out of the window."""

        now = self._clock()
        with self._lock:
            stale = []
            for key, timestamps in self._requests.items():
                self._drop_expired(timestamps, now)
                if not timestamps:
                    stale.append(key)
            for key in stale:
                del self._requests[key]
        return len(stale)

    def _drop_expired(self, timestamps: deque[float], now: float) -> None:
        window_start = now - self._window
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()
