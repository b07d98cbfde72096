"""Scheduler service - runs the notification dispatcher on a fixed interval.

The dispatcher itself keeps no state between runs; everything lives in the
queue table. This service is the in-process trigger for deployments without
an external cron calling POST /api/notifications/dispatch. Both may run at
once: a row is only sent while sent_at is null, and advancing is idempotent.
"""
import logging
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from .dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class SchedulerService:
    """Service for periodically dispatching due notifications."""

    def __init__(self, dispatcher_factory: Callable[[], NotificationDispatcher]):
        self._dispatcher_factory = dispatcher_factory
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self, interval_seconds: Optional[int] = None):
        """Start the scheduler."""
        if self._running:
            return

        interval = interval_seconds or settings.scheduler_interval_seconds
        self.scheduler = AsyncIOScheduler()

        # max_instances=1 keeps a slow run from overlapping the next tick
        self.scheduler.add_job(
            self._run_dispatch,
            trigger=IntervalTrigger(seconds=interval),
            id="dispatch_notifications",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=interval,
        )

        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (interval={interval}s)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def _run_dispatch(self):
        """One tick; errors are logged so the job keeps its schedule."""
        try:
            summary = await self._dispatcher_factory().run()
            if summary.ready:
                logger.info(f"{summary.message}: {summary.ready} of {summary.count} pending")
        except Exception as e:
            logger.error(f"Error dispatching notifications: {e}")
