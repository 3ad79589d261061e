from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from bastion.services.rate_limiter import RateLimiter


def test_blocks_after_limit_and_recovers_after_window(monotonic):
    limiter = RateLimiter(5, timedelta(minutes=5), clock=monotonic)

    assert all(limiter.check_and_increment("login") for _ in range(5))
    assert not limiter.check_and_increment("login")

    monotonic.advance(299)
    assert not limiter.check_and_increment("login")

    monotonic.advance(1)
    assert limiter.check_and_increment("login")


def test_window_slides_per_action(monotonic):
    limiter = RateLimiter(2, timedelta(seconds=10), clock=monotonic)

    assert limiter.check_and_increment("key")
    monotonic.advance(6)
    assert limiter.check_and_increment("key")
    monotonic.advance(5)

    # The first action left the window, the second is still in it.
    assert limiter.remaining("key") == 1
    assert limiter.check_and_increment("key")
    assert not limiter.check_and_increment("key")


def test_keys_are_independent(monotonic):
    limiter = RateLimiter(1, timedelta(minutes=1), clock=monotonic)

    assert limiter.check_and_increment(("login", "10.0.0.1"))
    assert limiter.check_and_increment(("login", "10.0.0.2"))
    assert limiter.check_and_increment(("register", "10.0.0.1"))
    assert not limiter.check_and_increment(("login", "10.0.0.1"))


def test_rejected_attempts_are_not_counted(monotonic):
    limiter = RateLimiter(1, timedelta(seconds=10), clock=monotonic)

    assert limiter.check_and_increment("key")
    monotonic.advance(5)
    assert not limiter.check_and_increment("key")
    monotonic.advance(5)
    assert limiter.check_and_increment("key")


def test_prune_forgets_idle_keys(monotonic):
    limiter = RateLimiter(3, timedelta(seconds=10), clock=monotonic)
    limiter.check_and_increment("old")
    monotonic.advance(8)
    limiter.check_and_increment("recent")
    monotonic.advance(3)

    assert limiter.prune() == 1
    assert limiter.remaining("old") == 3
    assert limiter.remaining("recent") == 2


def test_concurrent_callers_never_exceed_limit():
    limiter = RateLimiter(10, timedelta(minutes=5))
    allowed = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        for _ in range(20):
            if limiter.check_and_increment("shared"):
                allowed.append(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(allowed) == 10


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        RateLimiter(0, timedelta(seconds=1))
