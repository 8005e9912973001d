"""Delayed task submission for non-critical follow-ups."""

import asyncio
from typing import Awaitable, Callable, Protocol

from walletdrop.common.logging import logger


TaskFactory = Callable[[], Awaitable[None]]


class DelayedTaskRunner(Protocol):
    """Anything that can run `task_factory()` after `delay` seconds."""

    def submit(self, task_factory: TaskFactory, delay: float) -> None: ...


class InProcessDelayedTasks:
    """Best-effort, at-most-once runner backed by the event loop.

    Pending tasks are lost when the process exits.
    """

    def __init__(self) -> None:
        self._pending: set[asyncio.Task] = set()

    def submit(self, task_factory: TaskFactory, delay: float) -> None:
        task = asyncio.get_running_loop().create_task(self._run_later(task_factory, delay))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_later(self, task_factory: TaskFactory, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await task_factory()
        except Exception as exc:
            logger.error("delayed_task_failed error=%s", exc)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def cancel_all(self) -> None:
        for task in list(self._pending):
            task.cancel()
