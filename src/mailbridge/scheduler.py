"""Periodic route refresh driven by APScheduler."""

from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailbridge.cache import RouteCache

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 600  # 10 minutes
REFRESH_JOB_ID = "route_cache_refresh"


class RefreshScheduler:
    """Runs :meth:`RouteCache.refresh` on a fixed interval."""

    def __init__(
        self,
        cache: RouteCache,
        interval_seconds: float = DEFAULT_REFRESH_INTERVAL,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Register the refresh job and start the scheduler (needs a running loop)."""
        if self._started:
            return

        self.scheduler.add_job(
            self.cache.refresh,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=REFRESH_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.start()
        self._started = True
        logger.info("Route refresh scheduled every %ss", self.interval_seconds)

    def stop(self) -> None:
        if not self._started:
            return
        self.scheduler.shutdown(wait=False)
        self._started = False
        logger.info("Route refresh scheduler stopped")


__all__ = ["DEFAULT_REFRESH_INTERVAL", "REFRESH_JOB_ID", "RefreshScheduler"]
