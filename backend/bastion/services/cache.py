"""Thread-safe map whose entries expire a fixed time after being written."""
from __future__ import annotations

import threading
import time
from datetime import timedelta
from typing import Callable, Generic, Hashable, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """Entries expire ``ttl`` after they were written. Expiry is checked on read."""

    def __init__(self, ttl: timedelta, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl.total_seconds()
        self._clock = clock
        self._entries: dict[K, tuple[V, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: K) -> V | None:
        with self._lock:
            return self._get_alive(key, self._clock())

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + self._ttl)

    def setdefault(self, key: K, value: V) -> tuple[V, bool]:
        """Return the live value for ``key``, storing ``value`` first if there is none.

        The flag is True when ``value`` was inserted.
        """

        with self._lock:
            now = self._clock()
            current = self._get_alive(key, now)
            if current is not None:
                return current, False
            self._entries[key] = (value, now + self._ttl)
            return value, True

    def pop_if(self, key: K, expected: V) -> bool:
        """Invalidate ``key`` only if it currently holds ``expected``."""

        with self._lock:
            current = self._get_alive(key, self._clock())
            if current is None or current != expected:
                return False
            del self._entries[key]
            return True

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def prune(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)

    def _get_alive(self, key: K, now: float) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= now:
            del self._entries[key]
            return None
        return value
