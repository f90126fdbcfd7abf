"""Fire-and-forget task submission with an isolated error channel.

Notifications and feedback signals run as independent asyncio tasks. Their
failures are logged and collected on the runner, never raised into the
request that submitted them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskFailure:
    """A background task that ended with an exception."""

    name: str
    error: BaseException
    failed_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class TaskRunner:
    """Submit coroutines as detached tasks and keep their failures apart."""

    def __init__(self, max_failures: int = 100) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._failures: list[TaskFailure] = []
        self._max_failures = max_failures

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def failures(self) -> list[TaskFailure]:
        return list(self._failures)

    def submit(
        self, coro: Coroutine[Any, Any, Any], *, name: str = "background"
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and return its task.

        The caller never has to await the task. Must be called from inside
        a running event loop.
        """
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for all currently submitted tasks to finish."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            logger.warning("Background task %s still running after drain", task.get_name())

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task %s cancelled", task.get_name())
            return

        error = task.exception()
        if error is None:
            return

        logger.warning(
            "Background task %s failed: %s", task.get_name(), error, exc_info=error
        )
        self._failures.append(TaskFailure(name=task.get_name(), error=error))
        if len(self._failures) > self._max_failures:
            del self._failures[: len(self._failures) - self._max_failures]
