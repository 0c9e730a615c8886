"""Daily candle sync loop.

Runs one sync pass at startup (optional), then once a day at a fixed UTC
time shortly after the daily candle closes.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from tracker.logging import get_logger
from tracker.sync.synchronizer import CandleSynchronizer

logger = get_logger(__name__)


def seconds_until(now: datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` to the next occurrence of hour:minute UTC."""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailySyncScheduler:
    """Background task driving ``CandleSynchronizer.sync_all`` once a day."""

    def __init__(
        self,
        synchronizer: CandleSynchronizer,
        hour: int = 0,
        minute: int = 10,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._synchronizer = synchronizer
        self._hour = hour
        self._minute = minute
        self._clock = clock
        self._task: asyncio.Task | None = None

    async def run_once(self) -> dict[str, int]:
        logger.info("scheduled_sync_started")
        try:
            return await self._synchronizer.sync_all()
        except Exception as e:
            logger.error("scheduled_sync_failed", error=str(e))
            return {}

    async def run_forever(self, run_now: bool = False) -> None:
        if run_now:
            await self.run_once()
        while True:
            delay = seconds_until(self._clock(), self._hour, self._minute)
            logger.debug("next_sync_scheduled", in_seconds=round(delay))
            await asyncio.sleep(delay)
            await self.run_once()

    def start(self, run_now: bool = False) -> asyncio.Task:
        self._task = asyncio.create_task(self.run_forever(run_now))
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
