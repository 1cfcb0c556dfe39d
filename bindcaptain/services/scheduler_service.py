"""Periodic BIND refresh driven by APScheduler."""
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger


logger = logging.getLogger(__name__)


class SchedulerService:
    """Runs the refresh cycle on a cron schedule that can be switched on and off.

    A cycle that raises, or whose summary reports an invalid configuration,
    is tried once more after RETRY_DELAY.
    """

    JOB_ID = "dns_refresh"
    RETRY_JOB_ID = JOB_ID + "_retry"
    RETRY_DELAY = timedelta(hours=1)

    def __init__(
        self,
        refresh_callback: Callable,
        cron_hour: str = "*",
        cron_minute: str = "0",
        enabled: bool = False,
    ):
        """
        Args:
            refresh_callback: Runs one refresh cycle and returns its summary
                (or None when another cycle was already running)
            cron_hour: Cron hour expression, "*" refreshes every hour
            cron_minute: Cron minute expression
            enabled: Whether the cron job is installed on start()
        """
        self.refresh_callback = refresh_callback
        self.cron_hour = cron_hour
        self.cron_minute = cron_minute
        self._enabled = enabled
        self._scheduler = BackgroundScheduler()

    @property
    def schedule(self) -> str:
        return f"hour={self.cron_hour} minute={self.cron_minute}"

    def start(self) -> None:
        if self._scheduler.running:
            return
        self._scheduler.start()
        logger.info("Refresh scheduler running")
        self._sync_job()

    def stop(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("Refresh scheduler shut down")

    def enable_auto_refresh(self) -> None:
        self._enabled = True
        self._sync_job()

    def disable_auto_refresh(self) -> None:
        self._enabled = False
        self._sync_job()

    def _sync_job(self) -> None:
        """Install or drop the cron job so it matches the enabled flag."""
        if not self._enabled:
            self._drop(self.JOB_ID)
            logger.info("Auto-refresh off")
            return

        self._scheduler.add_job(
            self._run_refresh,
            trigger=CronTrigger(hour=self.cron_hour, minute=self.cron_minute),
            id=self.JOB_ID,
            name="BIND refresh",
            replace_existing=True,
        )
        logger.info(f"Auto-refresh on ({self.schedule})")

    def _drop(self, job_id: str) -> None:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            pass

    def _run_refresh(self) -> None:
        logger.info("Running scheduled refresh")
        try:
            summary = self.refresh_callback()
        except Exception as e:
            logger.error(f"Scheduled refresh raised: {e}")
            self._retry_later()
            return

        # None means a manual refresh held the lock; that run reports itself
        if summary is not None and not summary.is_valid:
            logger.warning("Scheduled refresh found invalid configuration")
            self._retry_later()

    def _retry_later(self) -> None:
        when = datetime.now() + self.RETRY_DELAY
        self._scheduler.add_job(
            self._run_refresh,
            trigger=DateTrigger(run_date=when),
            id=self.RETRY_JOB_ID,
            name="BIND refresh retry",
            replace_existing=True,
        )
        logger.info(f"Refresh retry at {when:%Y-%m-%d %H:%M:%S}")

    def is_enabled(self) -> bool:
        return self._enabled

    def has_scheduled_job(self) -> bool:
        return self._scheduler.get_job(self.JOB_ID) is not None

    def get_next_run_time(self) -> Optional[datetime]:
        """Next cron firing, None while auto-refresh is off or not started."""
        if not self._enabled:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    def get_status(self) -> dict:
        next_run = self.get_next_run_time()
        return {
            "enabled": self._enabled,
            "running": self._scheduler.running,
            "next_run_time": next_run.isoformat() if next_run else None,
            "cron_schedule": self.schedule,
        }
