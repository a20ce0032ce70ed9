"""
Shutdown Coordinator - Single point of control for graceful shutdown.

Shutdown happens exactly once, whatever triggers it (SIGINT, SIGTERM, an
API call or an exception in the entry point):

1. Stop accepting observers (hub closed, observer server stopped)
2. Stop every recurring timer (health monitor, reconnection timers)
3. Disconnect both devices concurrently and wait for both
4. Run registered cleanup callbacks
5. Record the exit code: 0 if every step succeeded, 1 otherwise
"""

from __future__ import annotations

import asyncio
import signal
import time
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from .broadcast_hub import BroadcastHub
from .devices.orchestrator import DeviceOrchestrator
from .health.monitor import HealthMonitor
from .logging_utils import get_module_logger

logger = get_module_logger("ShutdownCoordinator")

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class ShutdownState(Enum):
    """States of the shutdown process."""
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class Stoppable(Protocol):
    async def stop(self) -> None:
        ...


class ShutdownCoordinator:
    """Coordinates shutdown across all station components.

    Usage:
        coordinator = ShutdownCoordinator(orchestrator, hub=hub, health_monitor=monitor)
        coordinator.install_signal_handlers()
        ...
        exit_code = await coordinator.wait_for_shutdown()
    """

    def __init__(
        self,
        orchestrator: DeviceOrchestrator,
        *,
        hub: Optional[BroadcastHub] = None,
        health_monitor: Optional[HealthMonitor] = None,
        server: Optional[Stoppable] = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.hub = hub
        self.health_monitor = health_monitor
        self.server = server
        self._state = ShutdownState.RUNNING
        self._shutdown_event = asyncio.Event()
        self._cleanup_callbacks: List[Callable[[], Awaitable[Any]]] = []
        self._lock = asyncio.Lock()
        self._signal_task: Optional[asyncio.Task[None]] = None
        self._errors: List[str] = []
        self.exit_code: Optional[int] = None

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def is_shutting_down(self) -> bool:
        return self._state is ShutdownState.SHUTTING_DOWN

    @property
    def is_complete(self) -> bool:
        return self._state is ShutdownState.TERMINATED

    @property
    def errors(self) -> List[str]:
        return list(self._errors)

    def register_cleanup(self, callback: Callable[[], Awaitable[Any]]) -> None:
        """Register a callback to run after both devices are disconnected.

        Callbacks run in registration order.
        """
        self._cleanup_callbacks.append(callback)
        logger.debug("Registered cleanup callback: %s", getattr(callback, "__name__", callback))

    # ------------------------------------------------------------------
    # Signals

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """Hook SIGINT and SIGTERM. Returns False where the loop cannot do so."""
        loop = loop or asyncio.get_running_loop()

        def signal_handler(signame: str) -> None:
            if self._signal_task is None or self._signal_task.done():
                self._signal_task = loop.create_task(self.initiate_shutdown(signame))

        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler, sig.name)
        except NotImplementedError:
            # Windows event loops: KeyboardInterrupt reaches the entry point instead
            return False
        return True

    # ------------------------------------------------------------------
    # Shutdown

    async def initiate_shutdown(self, source: str = "unknown") -> int:
        """Run the shutdown sequence once.

        A call while shutdown is already under way is a no-op that returns
        at once; use wait_for_shutdown() to block on the running sequence.
        """
        async with self._lock:
            if self._state is not ShutdownState.RUNNING:
                logger.debug(
                    "Shutdown already initiated (state=%s), ignoring request from %s",
                    self._state.value,
                    source,
                )
                return self.exit_code if self.exit_code is not None else EXIT_SUCCESS
            self._state = ShutdownState.SHUTTING_DOWN

        shutdown_start = time.monotonic()
        logger.info("Shutdown initiated by %s", source)

        await self._run_step("close observer intake", self._close_intake)
        await self._run_step("stop timers", self._stop_timers)
        await self._disconnect_devices()
        for callback in self._cleanup_callbacks:
            await self._run_step(getattr(callback, "__name__", "cleanup"), callback)

        self.exit_code = EXIT_FAILURE if self._errors else EXIT_SUCCESS
        async with self._lock:
            self._state = ShutdownState.TERMINATED
            self._shutdown_event.set()

        logger.info(
            "Shutdown complete in %.3fs (exit code %d, %d error(s))",
            time.monotonic() - shutdown_start,
            self.exit_code,
            len(self._errors),
        )
        return self.exit_code

    async def _run_step(self, label: str, step: Callable[[], Awaitable[Any]]) -> None:
        try:
            await step()
        except Exception as exc:
            self._errors.append(f"{label}: {exc}")
            logger.error("Error during shutdown step %s: %s", label, exc, exc_info=True)

    async def _close_intake(self) -> None:
        if self.hub is not None:
            await self.hub.close()
        if self.server is not None:
            await self.server.stop()

    async def _stop_timers(self) -> None:
        if self.health_monitor is not None:
            await self.health_monitor.stop()
        await self.orchestrator.stop_timers()

    async def _disconnect_devices(self) -> None:
        results = await self.orchestrator.disconnect_all()
        for kind, result in results.items():
            if result is not None:
                self._errors.append(f"disconnect {kind.value}: {result}")
                logger.error("Disconnecting %s failed during shutdown: %s", kind.value, result)

    async def wait_for_shutdown(self) -> int:
        """Block until shutdown is complete and return the exit code."""
        await self._shutdown_event.wait()
        return self.exit_code if self.exit_code is not None else EXIT_SUCCESS


__all__ = [
    "EXIT_FAILURE",
    "EXIT_SUCCESS",
    "ShutdownCoordinator",
    "ShutdownState",
]
