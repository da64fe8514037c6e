"""asyncio implementation of the TaskScheduler port."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class AsyncioTaskScheduler:
    """Run deferred work on the running event loop.

    Pending tasks are held here so the loop does not garbage-collect them;
    failures are logged from the done-callback and never reach the caller.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self, delay: float, factory: Callable[[], Awaitable[None]], *, name: str
    ) -> None:
        task = asyncio.get_running_loop().create_task(self._run(delay, factory), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    async def _run(self, delay: float, factory: Callable[[], Awaitable[None]]) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        await factory()

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed", task.get_name(), exc_info=exc)

    async def shutdown(self) -> None:
        """Cancel whatever is still pending and wait for it to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending background tasks", len(tasks))
