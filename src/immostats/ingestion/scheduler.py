"""
Ingestion Scheduler

Runs the ingestion pipeline on a cron timer and on demand, never more than
one run at a time.
"""
import asyncio
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config.settings import settings
from src.immostats.exceptions import AlreadyRunning
from src.immostats.utils.logger import get_logger

logger = get_logger(__name__)

JOB_ID = "dvf_ingestion"


def parse_cron_hours(expression: str) -> List[int]:
    """Parse a comma-separated hour list such as "0,6,12,18"."""
    hours = sorted({int(part) for part in expression.split(",") if part.strip()})
    if not hours or any(hour < 0 or hour > 23 for hour in hours):
        raise ValueError(f"Invalid cron hours: {expression!r}")
    return hours


def next_scheduled_run(now: datetime, hours: Sequence[int] = (0, 6, 12, 18)) -> datetime:
    """
    Next timer boundary strictly after `now`.

    Args:
        now: Reference time, in the scheduler's timezone
        hours: Sorted hours of the day at which the timer fires

    Returns:
        Datetime of the next firing (same tzinfo as `now`)
    """
    for hour in hours:
        candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
        if candidate > now:
            return candidate
    tomorrow = now + timedelta(days=1)
    return tomorrow.replace(hour=hours[0], minute=0, second=0, microsecond=0)


class Scheduler:
    """
    Single-flight wrapper around the ingestion pipeline.

    The idle -> running transition happens under a lock, so concurrent
    triggers (timer or HTTP) resolve to exactly one run; the others get
    AlreadyRunning. The synchronous pipeline runs in a worker thread.
    """

    def __init__(
        self,
        pipeline: Any,
        timezone: Optional[str] = None,
        cron_hours: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.pipeline = pipeline
        self.timezone = ZoneInfo(timezone or settings.scheduler_timezone)
        self.cron_expression = cron_hours or settings.scheduler_cron_hours
        self.hours = parse_cron_hours(self.cron_expression)
        self._clock = clock or (lambda: datetime.now(self.timezone))

        self._lock = threading.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[AsyncIOScheduler] = None

        self.last_run: Optional[datetime] = None
        self.last_result: Optional[Dict[str, Any]] = None
        self.last_error: Optional[str] = None

    @property
    def phase(self) -> str:
        return "running" if self._running else "idle"

    def trigger_run(self) -> Dict[str, Any]:
        """
        Start an ingestion run in the background.

        Must be called from the event loop thread.

        Returns:
            Acknowledgment with the start timestamp

        Raises:
            AlreadyRunning: If a run is already in progress
        """
        loop = asyncio.get_running_loop()

        with self._lock:
            if self._running:
                raise AlreadyRunning("An ingestion run is already in progress")
            self._running = True

        started_at = self._clock()
        self._task = loop.create_task(self._execute())
        logger.info("ingestion_run_triggered", started_at=started_at.isoformat())
        return {"accepted": True, "started_at": started_at.isoformat()}

    async def _execute(self) -> None:
        try:
            summary = await asyncio.to_thread(self.pipeline.run)
        except Exception as e:
            self.last_error = str(e)
            logger.error("scheduled_ingestion_failed", error=str(e), error_type=type(e).__name__)
        else:
            self.last_run = self._clock()
            self.last_result = summary.to_dict() if hasattr(summary, "to_dict") else summary
            self.last_error = None
            logger.info("scheduled_ingestion_completed", **(self.last_result or {}))
        finally:
            with self._lock:
                self._running = False

    async def _on_timer(self) -> None:
        try:
            self.trigger_run()
        except AlreadyRunning:
            logger.info("scheduled_run_skipped", reason="already_running")

    async def wait_idle(self) -> None:
        """Wait for the in-flight run, if any, to finish."""
        task = self._task
        if task is not None and not task.done():
            await task

    def get_status(self) -> Dict[str, Any]:
        now = self._clock()
        return {
            "phase": self.phase,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_result": self.last_result,
            "last_error": self.last_error,
            "next_scheduled_run": next_scheduled_run(now, self.hours).isoformat(),
        }

    def start(self) -> None:
        """Start the cron timer. Must be called with a running event loop."""
        if self._timer is not None and self._timer.running:
            return

        self._timer = AsyncIOScheduler(timezone=self.timezone)
        self._timer.add_job(
            self._on_timer,
            trigger=CronTrigger(hour=self.cron_expression, minute=0, timezone=self.timezone),
            id=JOB_ID,
            name="DVF ingestion",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._timer.start()
        logger.info("scheduler_started", hours=self.hours, timezone=str(self.timezone))

    def shutdown(self) -> None:
        """Stop the cron timer. An in-flight run keeps going; await wait_idle() for it."""
        if self._timer is not None and self._timer.running:
            self._timer.shutdown(wait=False)
            logger.info("scheduler_stopped")
        self._timer = None
