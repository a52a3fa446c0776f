"""
Retention sweep for finished jobs.

The job table lives in memory, so finished jobs are evicted after a maximum
age and beyond a maximum count. Started by the API lifespan; the scheduler
itself never expires jobs.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog

from gtm_analyzer.core.models import utcnow
from gtm_analyzer.services.job_store import JobStore

logger = structlog.get_logger()


def sweep_expired_jobs(
    store: JobStore,
    max_age_seconds: int,
    max_jobs: int | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> int:
    """
    Remove finished jobs older than ``max_age_seconds`` (and beyond ``max_jobs``).

    Returns:
        Number of removed jobs
    """
    cutoff = clock() - timedelta(seconds=max_age_seconds)
    return store.purge(older_than=cutoff, max_jobs=max_jobs)


async def run_retention_loop(
    store: JobStore,
    max_age_seconds: int,
    max_jobs: int | None = None,
    interval_seconds: float = 60.0,
    clock: Callable[[], datetime] = utcnow,
) -> None:
    """Sweep every ``interval_seconds`` until cancelled."""
    log = logger.bind(component="RetentionSweeper", max_age_seconds=max_age_seconds, max_jobs=max_jobs)
    log.info("Retention sweeper started", interval_seconds=interval_seconds)

    while True:
        await asyncio.sleep(interval_seconds)
        removed = sweep_expired_jobs(store, max_age_seconds, max_jobs, clock)
        log.debug("Retention sweep finished", removed=removed, remaining=len(store))
