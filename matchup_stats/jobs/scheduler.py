"""Nightly scheduler for the bulk collection job."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import structlog
from apscheduler.triggers.cron import CronTrigger

from .collection import CollectionSummary

logger = structlog.get_logger(__name__)

JobRunner = Callable[[], Awaitable[CollectionSummary]]


def clamp_hour(hour_utc: int) -> int:
    return min(23, max(0, int(hour_utc)))


def next_run_at(hour_utc: int, now: Optional[datetime] = None) -> datetime:
    """Next ``HH:00`` UTC strictly after ``now``."""
    now = now or datetime.now(timezone.utc)
    trigger = CronTrigger(hour=clamp_hour(hour_utc), minute=0, second=0, timezone=timezone.utc)
    fire_time = trigger.get_next_fire_time(None, now)
    if fire_time <= now:
        fire_time = trigger.get_next_fire_time(None, now + timedelta(seconds=1))
    return fire_time


def seconds_until_next_run(hour_utc: int, now: Optional[datetime] = None) -> float:
    now = now or datetime.now(timezone.utc)
    return (next_run_at(hour_utc, now) - now).total_seconds()


class NightlyScheduler:
    """
    Runs the bulk job once a day at a fixed UTC hour.

    A single task loops ``wait until next slot -> run -> repeat``; the next
    slot is armed whether the run succeeded or failed. A lock keeps manual
    ``run_now`` calls and the nightly run from overlapping.
    """

    def __init__(
        self,
        job_runner: JobRunner,
        hour_utc: int,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.job_runner = job_runner
        self.hour_utc = clamp_hour(hour_utc)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self.last_summary: Optional[CollectionSummary] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the loop; calling it again returns the existing task."""
        if self.running:
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Nightly scheduler started", hour_utc=self.hour_utc)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Nightly scheduler stopped")

    async def run_now(self) -> Optional[CollectionSummary]:
        """Run the bulk job immediately unless one is already running."""
        if self._lock.locked():
            logger.warning("Bulk job already running, skipping manual run")
            return None
        return await self._run_once()

    async def _wait(self, delay: float) -> None:
        await asyncio.sleep(delay)

    async def _loop(self) -> None:
        while True:
            now = self._clock()
            delay = seconds_until_next_run(self.hour_utc, now)
            logger.info(
                "Next nightly collection scheduled",
                run_at=next_run_at(self.hour_utc, now).isoformat(),
                delay_seconds=round(delay, 1),
            )
            await self._wait(delay)
            await self._run_once()

    async def _run_once(self) -> Optional[CollectionSummary]:
        async with self._lock:
            try:
                summary = await self.job_runner()
            except Exception as e:
                self.last_error = str(e)
                logger.error(
                    "Nightly collection failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return None

            self.last_summary = summary
            self.last_error = None
            logger.info(
                "Nightly collection completed",
                patch=summary.patch,
                pairs_written=summary.pairs_written,
                duration_seconds=summary.duration_seconds,
            )
            return summary
