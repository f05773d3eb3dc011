from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Awaitable, Callable

from collection_sync.domain.interfaces import IScheduler


class AsyncioScheduler(IScheduler):
    """
    Runs every registered task as its own asyncio task.

    Each loop waits `initial_delay`, then alternates one invocation bounded
    by `timeout` with a sleep of `frequency`. Nothing an invocation raises
    stops its loop.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._log = logger
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def task_ids(self) -> list[str]:
        return list(self._tasks)

    def schedule_recurring(
        self,
        task_id: str,
        frequency: timedelta,
        timeout: timedelta,
        fn: Callable[[], Awaitable[None]],
        initial_delay: timedelta = timedelta(0),
    ) -> None:
        if task_id in self._tasks:
            raise ValueError(f"Task already scheduled: {task_id}")
        self._tasks[task_id] = asyncio.create_task(
            self._loop(task_id, frequency, timeout, fn, initial_delay),
            name=task_id,
        )
        self._log.info("Scheduled %s every %s (timeout %s)", task_id, frequency, timeout)

    async def _loop(
        self,
        task_id: str,
        frequency: timedelta,
        timeout: timedelta,
        fn: Callable[[], Awaitable[None]],
        initial_delay: timedelta,
    ) -> None:
        await asyncio.sleep(initial_delay.total_seconds())
        while True:
            try:
                await asyncio.wait_for(fn(), timeout=timeout.total_seconds())
            except asyncio.TimeoutError:
                self._log.warning("Task %s timed out after %s", task_id, timeout)
            except Exception as exc:
                self._log.error("Task %s failed: %s", task_id, exc, exc_info=True)
            await asyncio.sleep(frequency.total_seconds())

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._log.info("Scheduler stopped, cancelled %d tasks", len(tasks))
