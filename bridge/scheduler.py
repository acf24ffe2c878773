from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Awaitable, Callable, Dict

from shared.log import get_logger

logger = get_logger(__name__)

IntervalCallback = Callable[[], Awaitable[None]]


class IntervalScheduler:
    """
    Named periodic tasks on the running event loop.

    Each name owns at most one task. The callback first fires one period after
    registration and then every period until the name is cancelled. A callback
    may cancel its own name; the current run finishes and no further run is
    started.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_active(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    def interval(self, name: str, period: float, callback: IntervalCallback) -> bool:
        """Register a periodic callback. Returns False if the name is already active."""
        if self.is_active(name):
            logger.debug(f"Interval '{name}' already scheduled")
            return False
        task = asyncio.create_task(self._run(name, period, callback), name=f"interval:{name}")
        self._tasks[name] = task
        logger.debug(f"Scheduled interval '{name}' every {period}s")
        return True

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        # The loop in _run notices the missing entry itself
        if task is not asyncio.current_task():
            task.cancel()
        logger.debug(f"Cancelled interval '{name}'")
        return True

    async def shutdown(self) -> None:
        """Cancel every interval and wait for them to finish"""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is not current:
                with suppress(asyncio.CancelledError):
                    await task

    async def _run(self, name: str, period: float, callback: IntervalCallback) -> None:
        me = asyncio.current_task()
        while self._tasks.get(name) is me:
            await asyncio.sleep(period)
            if self._tasks.get(name) is not me:
                break
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Interval '{name}' callback failed: {e}")
