"""Port: deferred task submission."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol


class TaskScheduler(Protocol):
    """Run a unit of work after *delay* seconds, detached from the caller."""

    def submit(
        self, delay: float, factory: Callable[[], Awaitable[None]], *, name: str
    ) -> None:
        ...
