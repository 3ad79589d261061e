from __future__ import annotations

from datetime import timedelta

from bastion.services.cache import ExpiringCache
from bastion.services.rate_limiter import RateLimiter
from bastion.services.scheduler import SWEEP_JOB_ID, get_scheduler, schedule_sweep_job, stop_scheduler, sweep
from bastion.services.store import StoreUnavailable

PASSWORD = "Str0ng!Pass"


async def test_sweep_prunes_sessions_limiter_and_caches(manager, store, identity, clock, monotonic):
    await manager.register("alice", PASSWORD, identity)
    await manager.login("alice", PASSWORD, identity)
    limiter = RateLimiter(5, timedelta(seconds=10), clock=monotonic)
    limiter.check_and_increment("key")
    cache = ExpiringCache(timedelta(seconds=10), clock=monotonic)
    cache.put("account", 1234)

    clock.advance(days=8)
    monotonic.advance(11)

    counts = await sweep(store, limiter, [cache], clock=clock)

    assert counts == {"sessions": 1, "rate_limit_keys": 1, "cached_entries": 1}
    assert (await manager.find_by_username("alice")).sessions == {}


async def test_sweep_survives_store_outage(store, monotonic, monkeypatch):
    async def unavailable(now):
        raise StoreUnavailable("down")

    monkeypatch.setattr(store, "prune_expired_sessions", unavailable)

    counts = await sweep(store, RateLimiter(1, timedelta(seconds=1), clock=monotonic))

    assert counts["sessions"] == 0


def test_schedule_sweep_job(store):
    limiter = RateLimiter(1, timedelta(seconds=1))
    try:
        assert not schedule_sweep_job(0, store, limiter)
        assert get_scheduler().get_job(SWEEP_JOB_ID) is None

        assert schedule_sweep_job(60, store, limiter)
        assert get_scheduler().get_job(SWEEP_JOB_ID) is not None
    finally:
        stop_scheduler()
