import asyncio
import logging
from datetime import datetime, timezone

import pytest

from presence_board.scheduler import MIDNIGHT_GRACE_SECONDS, DailyScheduler, IntervalScheduler

from .conftest import FrozenClock


class Counter:
    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail

    async def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("tick failed")


@pytest.mark.asyncio
async def test_interval_scheduler_ticks_until_stopped():
    counter = Counter()
    scheduler = IntervalScheduler("test", counter, period=0.01)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.1)
    await scheduler.stop()
    ticks = counter.calls

    assert ticks >= 3
    assert not scheduler.running
    await asyncio.sleep(0.05)
    assert counter.calls == ticks


@pytest.mark.asyncio
async def test_pause_waits_for_the_running_tick():
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow():
        started.set()
        await release.wait()

    scheduler = IntervalScheduler("slow", slow, period=60)
    tick = asyncio.create_task(scheduler.tick())
    await started.wait()

    pausing = asyncio.create_task(scheduler.pause())
    await asyncio.sleep(0.01)
    assert not pausing.done()

    release.set()
    await pausing
    assert tick.done()
    assert scheduler.paused


@pytest.mark.asyncio
async def test_paused_scheduler_skips_ticks():
    counter = Counter()
    scheduler = IntervalScheduler("test", counter, period=60)

    await scheduler.pause()
    await scheduler.tick()
    assert counter.calls == 0

    scheduler.resume()
    await scheduler.tick()
    assert counter.calls == 1


@pytest.mark.asyncio
async def test_paused_loop_resumes_ticking():
    counter = Counter()
    scheduler = IntervalScheduler("test", counter, period=0.01)
    await scheduler.pause()

    scheduler.start()
    await asyncio.sleep(0.05)
    assert counter.calls == 0

    scheduler.resume()
    await asyncio.sleep(0.05)
    await scheduler.stop()
    assert counter.calls >= 1


@pytest.mark.asyncio
async def test_failing_tick_is_logged_and_loop_continues(caplog):
    counter = Counter(fail=True)
    scheduler = IntervalScheduler("flaky", counter, period=0.01)

    with caplog.at_level(logging.ERROR, logger="presence_board.scheduler"):
        scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

    assert counter.calls >= 2
    assert "Scheduled tick flaky failed" in caplog.text


def test_daily_scheduler_waits_until_just_after_local_midnight():
    clock = FrozenClock(datetime(2025, 5, 20, 23, 59, 0, tzinfo=timezone.utc))
    scheduler = DailyScheduler("rollover", Counter(), clock)

    assert scheduler.next_delay() == 60 + MIDNIGHT_GRACE_SECONDS
    assert scheduler.first_delay == 60 + MIDNIGHT_GRACE_SECONDS


def test_seconds_until_next_midnight_uses_the_clock_timezone():
    # 21:30 UTC is 23:30 in Berlin during summer time
    clock = FrozenClock(datetime(2025, 5, 20, 21, 30, tzinfo=timezone.utc), "Europe/Berlin")

    assert clock.seconds_until_next_midnight() == 30 * 60
    assert clock.today() == datetime(2025, 5, 20).date()
