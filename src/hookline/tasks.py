"""Supervised background tasks.

Fire-and-forget work (handler fan-out, webhook dispatch) is spawned through
a TaskSet so that it keeps a strong reference, gets its failures logged, and
can be awaited deterministically with ``wait()``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from hookline.logging import get_logger

logger = get_logger(__name__)


class TaskSet:
    """A set of running asyncio tasks owned by one component."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Schedule coro as a tracked task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                owner=self._name,
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def wait(self) -> None:
        """Wait until every task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        """Cancel all running tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


__all__ = ["TaskSet"]
