"""Background maintenance jobs.

Uses APScheduler to run three independent interval jobs for the lifetime of
the process:

- expiry sweep, every minute regardless of the configured TTL
- rate limit window reset, every ``reset_duration``
- snapshot flush, every ``save_duration``

Each job touches exactly one component and only that component's lock.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bootkv.adapters.rate_limit.base import AbstractRateLimiter
from bootkv.services.entry_store import EntryStore
from bootkv.services.persistence import PersistenceManager

logger = logging.getLogger(__name__)

SWEEP_INTERVAL = timedelta(minutes=1)


class MaintenanceScheduler:
    """Owns the APScheduler instance driving store maintenance."""

    def __init__(
        self,
        *,
        store: EntryStore,
        limiter: AbstractRateLimiter,
        persistence: PersistenceManager,
        expire_duration: timedelta,
        reset_duration: timedelta,
        save_duration: timedelta,
    ) -> None:
        self._store = store
        self._limiter = limiter
        self._persistence = persistence
        self._expire_duration = expire_duration
        self._reset_duration = reset_duration
        self._save_duration = save_duration
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def sweep_expired_task(self) -> None:
        try:
            self._store.sweep_expired(ttl=self._expire_duration.total_seconds())
        except Exception as e:
            logger.error(f"Expiry sweep failed: {str(e)}", exc_info=True)

    def reset_rate_limit_task(self) -> None:
        try:
            self._limiter.reset()
            logger.debug("rate_limit.reset")
        except Exception as e:
            logger.error(f"Rate limit reset failed: {str(e)}", exc_info=True)

    def flush_snapshot_task(self) -> None:
        try:
            self._persistence.flush()
        except Exception as e:
            logger.error(f"Snapshot flush failed: {str(e)}", exc_info=True)

    def start(self) -> None:
        if self._scheduler is not None:
            logger.warning("Scheduler already started")
            return

        scheduler = BackgroundScheduler(daemon=True)
        jobs = (
            (self.sweep_expired_task, SWEEP_INTERVAL, "sweep_expired", "Remove expired keys"),
            (self.reset_rate_limit_task, self._reset_duration, "reset_rate_limit", "Reset rate limit window"),
            (self.flush_snapshot_task, self._save_duration, "flush_snapshot", "Flush store snapshot"),
        )
        for func, interval, job_id, name in jobs:
            scheduler.add_job(
                func,
                trigger=IntervalTrigger(seconds=interval.total_seconds()),
                id=job_id,
                name=name,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Scheduler started: expiry sweep every "
            f"{SWEEP_INTERVAL.total_seconds():g}s, rate limit reset every "
            f"{self._reset_duration.total_seconds():g}s, snapshot every "
            f"{self._save_duration.total_seconds():g}s"
        )

    def job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def shutdown(self) -> None:
        """Stop scheduling new runs without waiting for a running job.

        An in-flight flush is awaited by :meth:`PersistenceManager.close`.
        """
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")
