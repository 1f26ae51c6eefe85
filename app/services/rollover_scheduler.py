"""
app/services/rollover_scheduler.py

Purpose: Monthly baseline rollover job

- Runs roll_over_month() at 00:00 UTC on the first day of each month
- Lives inside the web process as an asyncio task
- Started and stopped by the application lifespan
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

from app.core.exceptions import StoreError
from app.core.logging import get_logger
from app.services.meeting_stats_service import roll_over_month
from utils.time_utils import next_month_start

logger = get_logger(__name__)


class MonthlyRolloverScheduler:
    """Background task that shifts the statistics baseline once a month."""

    def __init__(
        self,
        job: Callable[[], Awaitable[None]] = roll_over_month,
        clock: Callable[[], datetime] = datetime.utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self._job = job
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def seconds_until_next_run(self) -> float:
        now = self._clock()
        return max((next_month_start(now) - now).total_seconds(), 0.0)

    async def run_once(self):
        """Runs the job, logging failures so the loop keeps going."""
        try:
            await self._job()
        except StoreError as e:
            logger.error(f"Monthly rollover failed: {e.message}")
        except Exception as e:
            logger.error(f"Unexpected error in monthly rollover: {e}", exc_info=True)

    async def _wait_until(self, target: datetime):
        # Re-check the clock; sleeps may wake early
        while True:
            remaining = (target - self._clock()).total_seconds()
            if remaining <= 0:
                return
            await self._sleep(remaining)

    async def _loop(self):
        while True:
            target = next_month_start(self._clock())
            logger.info(f"Next monthly rollover at {target.isoformat()} UTC")
            await self._wait_until(target)
            await self.run_once()

    def start(self):
        if self.is_running:
            logger.warning("Monthly rollover scheduler already running")
            return
        self._task = asyncio.create_task(self._loop(), name="monthly-rollover")
        logger.info("Monthly rollover scheduler started")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Monthly rollover scheduler stopped")
