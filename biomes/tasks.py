"""
Background task helpers.

BackgroundTaskController runs named tasks that can all be cancelled and
awaited in one call. Tasks started with ``log_errors=True`` are side
requests: their failure is logged and never propagated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundTaskController:
    """Owns a set of named background tasks.

    Usage:
        controller = BackgroundTaskController()
        task = controller.run_in_background("checkProgress", poll())
        controller.run_in_background("triggerPlayerShardsMesh", mesh(), log_errors=True)
        ...
        await controller.abort_and_wait()
    """

    def __init__(self) -> None:
        self._tasks: dict[asyncio.Task[Any], str] = {}
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def run_in_background(
        self, name: str, coro: Coroutine[Any, Any, T], *, log_errors: bool = False
    ) -> asyncio.Task[T]:
        """Start `coro` as a task tracked under `name`."""
        if self._aborted:
            coro.close()
            raise RuntimeError(f"Cannot start '{name}': controller already aborted")
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks[task] = name
        task.add_done_callback(self._forget)
        if log_errors:
            task.add_done_callback(self._log_failure)
        logger.debug(f"Started background task {name}")
        return task

    def _forget(self, task: asyncio.Task[Any]) -> None:
        self._tasks.pop(task, None)

    def _log_failure(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"[Task] {task.get_name()} error: {type(exc).__name__}: {exc}")

    def active(self) -> list[str]:
        """Names of tasks that have not finished yet."""
        return [name for task, name in self._tasks.items() if not task.done()]

    async def cancel(self, task: asyncio.Task[Any]) -> None:
        """Cancel one task and wait for it to finish."""
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def cancel_all(self) -> None:
        """Cancel every running task and wait for each to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def abort_and_wait(self) -> None:
        """Cancel every task, wait for them, and refuse new ones."""
        self._aborted = True
        await self.cancel_all()
