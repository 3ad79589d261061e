"""Background scheduler for periodic housekeeping."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bastion.schemas.account import utcnow
from bastion.services.cache import ExpiringCache
from bastion.services.rate_limiter import RateLimiter
from bastion.services.store import AccountStore, StoreUnavailable

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep-expired-state"

_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler()
    return _scheduler


def start_scheduler() -> None:
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None


async def sweep(
    store: AccountStore,
    limiter: RateLimiter,
    caches: Iterable[ExpiringCache] = (),
    clock: Callable[[], datetime] = utcnow,
) -> dict[str, int]:
    """Drop expired sessions, idle rate limit keys and stale pending codes."""

    counts = {"sessions": 0, "rate_limit_keys": limiter.prune(), "cached_entries": 0}
    for cache in caches:
        counts["cached_entries"] += cache.prune()
    try:
        counts["sessions"] = await store.prune_expired_sessions(clock())
    except StoreUnavailable as exc:
        # Next run will catch up.
        logger.warning("Skipping session sweep: %s", exc)
    logger.debug("Sweep finished: %s", counts)
    return counts


def schedule_sweep_job(
    interval_seconds: int,
    store: AccountStore,
    limiter: RateLimiter,
    caches: Iterable[ExpiringCache] = (),
) -> bool:
    """Run `sweep` every ``interval_seconds``. A non-positive interval disables it."""

    if interval_seconds <= 0:
        logger.info("Sweep job disabled")
        return False
    scheduler = get_scheduler()
    trigger = IntervalTrigger(seconds=interval_seconds)
    scheduler.add_job(
        sweep,
        trigger=trigger,
        id=SWEEP_JOB_ID,
        args=[store, limiter, list(caches)],
        replace_existing=True,
    )
    logger.info("Scheduled sweep job every %s seconds", interval_seconds)
    return True
