"""Self-rescheduling poll tasks.

Each task runs ``tick()`` and sleeps for the delay it returns before the next
tick, so a slow call pushes out its own next run. Ticks of one task never
overlap; different tasks interleave freely on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

LOGGER = logging.getLogger("Sync.Scheduler")


class RepeatingTask(ABC):
    """One call kind. ``tick`` returns the next delay, or ``None`` to stop."""

    name: str = "task"
    interval: float = 60.0

    @abstractmethod
    async def tick(self) -> float | None: ...


class PollScheduler:
    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> None:
        self._sleep = sleep
        self._tasks: list[RepeatingTask] = []
        self._running: dict[str, asyncio.Task] = {}

    @property
    def tasks(self) -> list[RepeatingTask]:
        return list(self._tasks)

    def add(self, task: RepeatingTask) -> None:
        self._tasks.append(task)

    async def run_once(self, task: RepeatingTask) -> float | None:
        """Run a single tick; unexpected errors fall back to the normal interval."""
        try:
            return await task.tick()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            LOGGER.exception(f"[{task.name}] tick failed: {type(e).__name__}: {e}")
            return task.interval

    async def run_task(self, task: RepeatingTask) -> None:
        LOGGER.debug(f"[{task.name}] poll loop started (interval={task.interval}s)")
        while True:
            delay = await self.run_once(task)
            if delay is None:
                LOGGER.info(f"[{task.name}] stopped rescheduling")
                return
            await self._sleep(delay)

    def start(self) -> None:
        for task in self._tasks:
            if task.name not in self._running:
                self._running[task.name] = asyncio.create_task(
                    self.run_task(task), name=f"poll:{task.name}"
                )
        LOGGER.info(f"Started {len(self._running)} poll loops")

    async def stop(self) -> None:
        for running in self._running.values():
            running.cancel()
        await asyncio.gather(*self._running.values(), return_exceptions=True)
        self._running.clear()
