"""
Device Connection - single-flight connection lifecycle for one device.

Every connection attempt runs as its own task and carries a fresh attempt
token. The token is stored in ``DeviceHandle.in_flight_attempt_id`` while the
attempt is in flight; completion handlers compare their captured token with
the current one before touching state, so a completion that lost a race
with ``disconnect()`` is discarded instead of corrupting newer state.

Callers that arrive while an attempt is in flight share its outcome through
a shielded future. A second attempt is never started.

States:
    IDLE -> SCANNING -> CONNECTING -> CONNECTED
    IDLE -> CONNECTING -> CONNECTED           (explicit port)
    any non-idle state -> DISCONNECTING -> IDLE
    CONNECTED -> IDLE                          (link lost)
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Set

from ..asyncio_utils import create_logged_task
from ..errors import ConnectFailed, DeviceError, NoCandidateFound, TeardownFailed
from ..events import (
    DEVICE_CONNECTED,
    DEVICE_DISCONNECTED,
    MEASUREMENT_SAMPLE,
    POSITION_SAMPLE,
    EventChannel,
)
from ..logging_utils import get_module_logger
from .drivers import MeasurementDriver
from .types import IN_FLIGHT_STATES, ConnectionState, DeviceHandle, DeviceKind, DeviceStatus

logger = get_module_logger("DeviceConnection")

SUPERSEDED = "superseded"

_SAMPLE_EVENTS = {
    DeviceKind.MEASUREMENT: MEASUREMENT_SAMPLE,
    DeviceKind.POSITION: POSITION_SAMPLE,
}

SampleListener = Callable[[Dict[str, Any]], None]


def _consume_result(future: asyncio.Future) -> None:
    # Attempt outcomes may have no awaiting caller (e.g. a cancelled tick)
    if not future.cancelled():
        future.exception()


class DeviceConnection:
    """Connection state and lifecycle of a single device.

    The DeviceHandle is mutated only here. Other components read
    ``status()`` snapshots.
    """

    def __init__(
        self,
        kind: DeviceKind,
        driver: MeasurementDriver,
        *,
        max_retries: int = 10,
        auto_reconnect: bool = True,
        connect_busy_timeout: float = 5.0,
        disconnect_timeout: float = 5.0,
        busy_poll_interval: float = 0.2,
        channel: Optional[EventChannel] = None,
    ) -> None:
        self.kind = kind
        self.driver = driver
        self.max_retries = max_retries
        self.auto_reconnect = auto_reconnect
        self.connect_busy_timeout = connect_busy_timeout
        self.disconnect_timeout = disconnect_timeout
        self.busy_poll_interval = busy_poll_interval
        self.channel = channel or EventChannel(kind.value)

        self.handle = DeviceHandle(kind=kind)
        self._attempt: Optional[asyncio.Future] = None
        self._teardown: Optional[asyncio.Future] = None
        self._stale_teardowns: Set[asyncio.Task[Any]] = set()
        self._sample_listeners: List[SampleListener] = []
        self._pending: Set[asyncio.Task[Any]] = set()
        self._retry_cap_logged = False

        driver.on_sample(self._handle_sample)
        driver.on_disconnect(self._handle_link_lost)

    # ------------------------------------------------------------------
    # Queries

    @property
    def state(self) -> ConnectionState:
        return self.handle.state

    @property
    def active_port(self) -> Optional[str]:
        return self.handle.active_port

    @property
    def retry_count(self) -> int:
        return self.handle.retry_count

    def status(self) -> DeviceStatus:
        return self.handle.snapshot()

    def add_sample_listener(self, listener: SampleListener) -> None:
        self._sample_listeners.append(listener)

    # ------------------------------------------------------------------
    # Connect

    async def connect(self, port: Optional[str] = None) -> str:
        """Connect the device, or join the attempt already in flight.

        Args:
            port: Serial port to open. None scans for the device.

        Returns:
            The active port.

        Raises:
            NoCandidateFound: The scan identified no device
            ConnectFailed: The handshake failed, the driver stayed busy, or
                the attempt was superseded by a disconnect
        """
        while True:
            handle = self.handle

            if handle.state is ConnectionState.CONNECTED:
                if port is None or port == handle.active_port:
                    return handle.active_port
                logger.info(
                    "%s: switching from %s to %s", self.kind.value, handle.active_port, port
                )
                with contextlib.suppress(TeardownFailed):
                    await self.disconnect()
                continue

            if handle.state in IN_FLIGHT_STATES and self._attempt is not None:
                logger.debug("%s: joining in-flight attempt", self.kind.value)
                return await asyncio.shield(self._attempt)

            if handle.state is ConnectionState.DISCONNECTING and self._teardown is not None:
                await asyncio.shield(self._teardown)
                continue

            if self._stale_teardowns:
                # A superseded link is still being closed on the shared driver
                logger.debug("%s: waiting for stale link teardown", self.kind.value)
                await asyncio.wait(set(self._stale_teardowns))
                continue

            if self.driver.is_busy():
                await self._wait_until_driver_idle()
                continue

            future = self._begin_attempt(port)
            return await asyncio.shield(future)

    async def _wait_until_driver_idle(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.connect_busy_timeout
        logger.debug("%s: driver busy, waiting up to %.1fs", self.kind.value, self.connect_busy_timeout)
        while self.driver.is_busy():
            if loop.time() >= deadline:
                raise ConnectFailed(
                    self.kind, f"driver still busy after {self.connect_busy_timeout:.1f}s"
                )
            await asyncio.sleep(self.busy_poll_interval)

    def _begin_attempt(self, port: Optional[str]) -> asyncio.Future:
        attempt_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_result)

        self.handle.in_flight_attempt_id = attempt_id
        self.handle.last_error = None
        self._attempt = future
        self._transition(ConnectionState.CONNECTING if port else ConnectionState.SCANNING)

        create_logged_task(
            self._run_attempt(attempt_id, port, future),
            logger=logger,
            context=f"{self.kind.value}-connect-{attempt_id[:8]}",
            pending=self._pending,
        )
        return future

    def _is_current(self, attempt_id: str) -> bool:
        return self.handle.in_flight_attempt_id == attempt_id

    async def _run_attempt(
        self, attempt_id: str, port: Optional[str], future: asyncio.Future
    ) -> None:
        try:
            if port is None:
                port = await self._discover()
                if not self._is_current(attempt_id):
                    raise ConnectFailed(self.kind, SUPERSEDED, port=port)
                self._transition(ConnectionState.CONNECTING)
            try:
                active_port = await self.driver.connect(port)
            except DeviceError:
                raise
            except Exception as exc:
                raise ConnectFailed(self.kind, str(exc) or type(exc).__name__, port=port) from exc
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except DeviceError as exc:
            self._finish_failure(attempt_id, exc, future)
            return

        self._finish_success(attempt_id, active_port or port, future)

    async def _discover(self) -> str:
        try:
            candidates = await self.driver.scan()
        except Exception as exc:
            raise ConnectFailed(self.kind, f"scan failed: {exc}") from exc

        for candidate in candidates:
            if candidate.identified:
                logger.info(
                    "%s identified on %s %s", self.kind.value, candidate.port, candidate.info or ""
                )
                return candidate.port
        raise NoCandidateFound(self.kind, scanned=len(candidates))

    def _finish_success(self, attempt_id: str, port: str, future: asyncio.Future) -> None:
        if not self._is_current(attempt_id):
            logger.debug("%s: discarding stale connection on %s", self.kind.value, port)
            future.set_exception(ConnectFailed(self.kind, SUPERSEDED, port=port))
            task = create_logged_task(
                self._discard_stale_link(port),
                logger=logger,
                context=f"{self.kind.value}-stale-teardown",
                pending=self._pending,
            )
            self._stale_teardowns.add(task)
            task.add_done_callback(self._stale_teardowns.discard)
            return

        handle = self.handle
        handle.in_flight_attempt_id = None
        handle.active_port = port
        handle.retry_count = 0
        handle.last_error = None
        self._attempt = None
        self._retry_cap_logged = False
        self._transition(ConnectionState.CONNECTED)

        logger.info("%s connected on %s", self.kind.value, port)
        self.channel.publish(DEVICE_CONNECTED, {"kind": self.kind.value, "port": port})
        future.set_result(port)

    def _finish_failure(self, attempt_id: str, error: DeviceError, future: asyncio.Future) -> None:
        if not self._is_current(attempt_id):
            logger.debug("%s: discarding stale failure: %s", self.kind.value, error)
            future.set_exception(ConnectFailed(self.kind, SUPERSEDED, port=error.port))
            return

        handle = self.handle
        handle.in_flight_attempt_id = None
        handle.active_port = None
        handle.last_error = str(error)
        self._attempt = None
        self._transition(ConnectionState.IDLE)

        if isinstance(error, NoCandidateFound):
            logger.info("No %s device found: %s", self.kind.value, error.reason)
        else:
            logger.warning("%s connection failed: %s", self.kind.value, error.reason)
            self.channel.publish(
                DEVICE_DISCONNECTED,
                {"kind": self.kind.value, "reason": "connect-failed", "error": error.reason},
            )
        future.set_exception(error)

    async def _discard_stale_link(self, port: str) -> None:
        if self._teardown is not None:
            await asyncio.shield(self._teardown)
        if self.handle.state is not ConnectionState.IDLE:
            # A newer attempt owns the driver now
            return
        try:
            await asyncio.wait_for(self.driver.disconnect(), timeout=self.disconnect_timeout)
        except Exception as exc:
            logger.error("%s: failed to close stale link on %s: %s", self.kind.value, port, exc)

    # ------------------------------------------------------------------
    # Disconnect

    async def disconnect(self) -> None:
        """Tear the device down. Local state always ends IDLE.

        Raises:
            TeardownFailed: The driver teardown raised or timed out. It is
                raised after local state has reached IDLE and is not retried.
        """
        handle = self.handle
        if handle.state is ConnectionState.IDLE:
            return
        if handle.state is ConnectionState.DISCONNECTING and self._teardown is not None:
            await asyncio.shield(self._teardown)
            return

        previous_state = handle.state
        previous_port = handle.active_port
        handle.in_flight_attempt_id = None
        self._attempt = None
        teardown = asyncio.get_running_loop().create_future()
        self._teardown = teardown
        self._transition(ConnectionState.DISCONNECTING)

        error: Optional[TeardownFailed] = None
        try:
            await asyncio.wait_for(self.driver.disconnect(), timeout=self.disconnect_timeout)
        except asyncio.TimeoutError:
            error = TeardownFailed(
                self.kind,
                f"teardown timed out after {self.disconnect_timeout:.1f}s",
                port=previous_port,
            )
        except Exception as exc:
            error = TeardownFailed(self.kind, f"teardown failed: {exc}", port=previous_port)
        finally:
            handle.active_port = None
            self._teardown = None
            self._transition(ConnectionState.IDLE)
            teardown.set_result(None)

        self.channel.publish(
            DEVICE_DISCONNECTED,
            {"kind": self.kind.value, "port": previous_port, "from": previous_state.value},
        )

        if error is not None:
            handle.last_error = str(error)
            logger.error("%s", error)
            raise error
        logger.info("%s disconnected", self.kind.value)

    # ------------------------------------------------------------------
    # Automatic reconnection

    async def auto_reconnect_tick(self) -> None:
        """One reconnection timer tick. Only ever attempts from IDLE."""
        if not self.auto_reconnect:
            return
        handle = self.handle
        if handle.state is not ConnectionState.IDLE or handle.in_flight_attempt_id is not None:
            return
        if handle.retry_count >= self.max_retries:
            if not self._retry_cap_logged:
                logger.info(
                    "%s: %d reconnection attempts failed, manual connection required",
                    self.kind.value,
                    handle.retry_count,
                )
                self._retry_cap_logged = True
            return
        if self.driver.is_busy():
            logger.debug("%s: driver busy, skipping reconnection tick", self.kind.value)
            return

        try:
            port = await self.connect()
        except (NoCandidateFound, ConnectFailed) as exc:
            if exc.reason == SUPERSEDED:
                logger.debug("%s: reconnection attempt cancelled by disconnect", self.kind.value)
                return
            handle.retry_count += 1
            logger.info(
                "%s reconnection attempt %d/%d failed: %s",
                self.kind.value,
                handle.retry_count,
                self.max_retries,
                exc.reason,
            )
            return
        logger.info("%s reconnected on %s", self.kind.value, port)

    # ------------------------------------------------------------------
    # Driver callbacks

    def _handle_sample(self, sample: Dict[str, Any]) -> None:
        self.channel.publish(_SAMPLE_EVENTS[self.kind], sample)
        for listener in list(self._sample_listeners):
            try:
                listener(sample)
            except Exception as exc:
                logger.error("%s sample listener failed: %s", self.kind.value, exc)

    def _handle_link_lost(self, reason: Optional[str] = None) -> None:
        handle = self.handle
        if handle.state is not ConnectionState.CONNECTED:
            logger.debug("%s: ignoring link loss in state %s", self.kind.value, handle.state.value)
            return
        port = handle.active_port
        handle.active_port = None
        handle.last_error = reason or "link lost"
        self._transition(ConnectionState.IDLE)
        logger.warning("%s disconnected unexpectedly from %s: %s", self.kind.value, port, handle.last_error)
        self.channel.publish(
            DEVICE_DISCONNECTED, {"kind": self.kind.value, "port": port, "reason": "lost"}
        )

    # ------------------------------------------------------------------

    def _transition(self, new_state: ConnectionState) -> None:
        old_state = self.handle.state
        if old_state is new_state:
            return
        self.handle.state = new_state
        self.handle.state_entered_at = time.monotonic()
        logger.debug("%s: %s -> %s", self.kind.value, old_state.value, new_state.value)

    async def close(self) -> None:
        """Cancel background housekeeping and close the event channel."""
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self.channel.close()


__all__ = ["DeviceConnection", "SUPERSEDED"]
