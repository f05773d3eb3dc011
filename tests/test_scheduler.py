import asyncio
import logging
from datetime import timedelta

import pytest

from collection_sync.infrastructure.scheduler import AsyncioScheduler

log = logging.getLogger("tests.scheduler")

TICK = timedelta(milliseconds=10)


@pytest.mark.asyncio
async def test_runs_task_repeatedly_until_shutdown():
    calls = []
    scheduler = AsyncioScheduler(log)

    async def task():
        calls.append(1)

    scheduler.schedule_recurring("t", frequency=TICK, timeout=timedelta(seconds=1), fn=task)
    await asyncio.sleep(0.1)
    await scheduler.shutdown()

    assert len(calls) >= 2
    assert scheduler.task_ids == []


@pytest.mark.asyncio
async def test_failures_and_timeouts_do_not_stop_the_loop(caplog):
    calls = []
    scheduler = AsyncioScheduler(log)

    async def task():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first call fails")
        if len(calls) == 2:
            await asyncio.sleep(1)

    with caplog.at_level(logging.WARNING, logger="tests.scheduler"):
        scheduler.schedule_recurring("t", frequency=TICK, timeout=timedelta(milliseconds=20), fn=task)
        await asyncio.sleep(0.2)
        await scheduler.shutdown()

    assert len(calls) >= 3
    assert "first call fails" in caplog.text
    assert "timed out" in caplog.text


@pytest.mark.asyncio
async def test_initial_delay_postpones_first_run():
    calls = []
    scheduler = AsyncioScheduler(log)

    async def task():
        calls.append(1)

    scheduler.schedule_recurring(
        "t", frequency=timedelta(hours=1), timeout=timedelta(seconds=1), fn=task,
        initial_delay=timedelta(hours=1),
    )
    await asyncio.sleep(0.05)
    await scheduler.shutdown()

    assert calls == []


@pytest.mark.asyncio
async def test_duplicate_task_ids_are_rejected():
    scheduler = AsyncioScheduler(log)

    async def task():
        pass

    scheduler.schedule_recurring("t", frequency=timedelta(hours=1), timeout=timedelta(seconds=1), fn=task)
    with pytest.raises(ValueError):
        scheduler.schedule_recurring("t", frequency=timedelta(hours=1), timeout=timedelta(seconds=1), fn=task)
    await scheduler.shutdown()
