"""Asyncio helpers for safer long-running operation."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Optional

from .logging_utils import LoggerLike, ensure_structured_logger


def _task_label(task: asyncio.Task[Any], context: Optional[str]) -> str:
    if context:
        return context
    name = task.get_name()
    return name or "background task"


def add_task_exception_logger(
    task: asyncio.Task[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
) -> asyncio.Task[Any]:
    """Ensure task exceptions are retrieved and logged.

    Without this, exceptions in fire-and-forget tasks surface as
    "Task exception was never retrieved" warnings long after the failure.
    """
    task_logger = ensure_structured_logger(logger, fallback_name="asyncio")

    def _done(done_task: asyncio.Task[Any]) -> None:
        if done_task.cancelled():
            return
        exc = done_task.exception()
        if exc is not None:
            task_logger.error(
                "Unhandled exception in %s: %s",
                _task_label(done_task, context),
                exc,
                exc_info=exc,
            )

    task.add_done_callback(_done)
    return task


def create_logged_task(
    coro: Awaitable[Any],
    *,
    logger: LoggerLike = None,
    context: Optional[str] = None,
    pending: Optional[set[asyncio.Task[Any]]] = None,
) -> asyncio.Task[Any]:
    """Create a task that won't lose exceptions, optionally tracking it."""
    task = asyncio.get_running_loop().create_task(coro)
    if context:
        task.set_name(context)

    add_task_exception_logger(task, logger=logger, context=context)

    if pending is not None:
        pending.add(task)
        task.add_done_callback(pending.discard)

    return task


async def cancel_and_wait(task: Optional[asyncio.Task[Any]]) -> None:
    """Cancel ``task`` and wait for it to unwind."""
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class PeriodicTask:
    """Run an async callable on a fixed cadence until stopped.

    Each tick is a fault isolation boundary: an exception raised by one tick
    is logged and the next tick still runs.

    Usage:
        timer = PeriodicTask("health", 10.0, monitor.tick, logger=logger)
        timer.start()
        ...
        await timer.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[Any]],
        *,
        logger: LoggerLike = None,
        run_immediately: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive (got {interval!r})")
        self.name = name
        self.interval = interval
        self._tick = tick
        self._run_immediately = run_immediately
        self._logger = ensure_structured_logger(logger, fallback_name="PeriodicTask")
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self.tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = create_logged_task(
            self._loop(), logger=self._logger, context=f"timer:{self.name}"
        )
        self._logger.debug("Timer %s started (interval=%.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        if not self._running and self._task is None:
            return
        self._running = False
        await cancel_and_wait(self._task)
        self._task = None
        self._logger.debug("Timer %s stopped after %d ticks", self.name, self.tick_count)

    async def _loop(self) -> None:
        if not self._run_immediately:
            await asyncio.sleep(self.interval)
        while self._running:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._logger.error("Timer %s tick failed: %s", self.name, exc, exc_info=True)
            self.tick_count += 1
            await asyncio.sleep(self.interval)


__all__ = [
    "PeriodicTask",
    "add_task_exception_logger",
    "cancel_and_wait",
    "create_logged_task",
]
