"""Repeating timers that emit ticks to the service."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from .clock import Clock

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[Any]]

# fire slightly after midnight so "today" is already the new day
MIDNIGHT_GRACE_SECONDS = 1.0


class IntervalScheduler:
    """Calls ``callback`` every ``period`` seconds until stopped.

    ``pause()`` returns only once no tick is running, and no tick starts
    until ``resume()``. A failing tick is logged and the loop keeps going.
    """

    def __init__(self, name: str, callback: TickCallback, period: float, first_delay: float = 0.0) -> None:
        self.name = name
        self.period = period
        self.first_delay = first_delay
        self._callback = callback
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._tick_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"scheduler-{self.name}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def pause(self) -> None:
        self._resumed.clear()
        async with self._tick_lock:
            logger.debug("Scheduler %s paused", self.name)

    def resume(self) -> None:
        self._resumed.set()
        logger.debug("Scheduler %s resumed", self.name)

    async def tick(self) -> None:
        async with self._tick_lock:
            if self.paused:
                return
            try:
                await self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("Scheduled tick %s failed", self.name)

    def next_delay(self) -> float:
        return self.period

    async def _run(self) -> None:
        await asyncio.sleep(self.first_delay)
        while True:
            await self._resumed.wait()
            await self.tick()
            await asyncio.sleep(self.next_delay())


class DailyScheduler(IntervalScheduler):
    """Fires once per local day, just after midnight in ``clock``'s timezone."""

    def __init__(self, name: str, callback: TickCallback, clock: Clock) -> None:
        super().__init__(name, callback, period=24 * 60 * 60)
        self.clock = clock
        self.first_delay = self.next_delay()

    def next_delay(self) -> float:
        return self.clock.seconds_until_next_midnight() + MIDNIGHT_GRACE_SECONDS


__all__ = ["IntervalScheduler", "DailyScheduler", "TickCallback"]
