"""Periodic background tasks for promotion and cleanup."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class PeriodicTask:
    """Runs a coroutine function on a fixed interval.

    A failing run is logged and the next run happens as scheduled.
    Runs never overlap: ``run_once`` waits for an in-progress run.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        run_on_start: bool = False,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self._func = func
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self.last_result: Any = None
        self.runs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"periodic:{self.name}")
        logger.info("periodic_task_started", task=self.name, interval=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("periodic_task_stopped", task=self.name)

    async def run_once(self) -> Any:
        """Run immediately; exceptions propagate to the caller."""
        async with self._lock:
            self.last_result = await self._func()
            self.runs += 1
            return self.last_result

    async def _loop(self) -> None:
        if not self.run_on_start:
            await asyncio.sleep(self.interval_seconds)
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("periodic_task_failed", task=self.name, error=str(e))
            await asyncio.sleep(self.interval_seconds)


class BackgroundScheduler:
    """Owns a set of named periodic tasks."""

    def __init__(self) -> None:
        self._tasks: dict[str, PeriodicTask] = {}

    def add(self, task: PeriodicTask) -> None:
        if task.name in self._tasks:
            raise ValueError(f"Task already registered: {task.name}")
        self._tasks[task.name] = task

    def get(self, name: str) -> PeriodicTask:
        return self._tasks[name]

    @property
    def tasks(self) -> list[PeriodicTask]:
        return list(self._tasks.values())

    def start(self) -> None:
        for task in self._tasks.values():
            task.start()

    async def stop(self) -> None:
        for task in self._tasks.values():
            await task.stop()

    async def run_once(self, name: str) -> Any:
        return await self.get(name).run_once()
