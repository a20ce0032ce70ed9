"""
Device Orchestrator - owns both device connections of the station.

Routes connect/disconnect by device kind, runs one reconnection timer per
device, and forwards measurement samples to the persistence sink while the
position device reports an active logging session.

Usage:
    orchestrator = DeviceOrchestrator(config, xl2_driver, gps_driver, persistence=sink)
    await orchestrator.start()

    port = await orchestrator.connect(DeviceKind.MEASUREMENT)
    status = orchestrator.get_device_status(DeviceKind.MEASUREMENT)

    await orchestrator.disconnect_all()
    await orchestrator.stop()
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Set

from ..asyncio_utils import PeriodicTask, create_logged_task
from ..config import StationConfig
from ..errors import DeviceError
from ..events import EventChannel
from ..logging_utils import get_module_logger
from .connection import DeviceConnection
from .drivers import MeasurementDriver, PersistenceSink, PositionDriver
from .types import DeviceKind, DeviceStatus

logger = get_module_logger("DeviceOrchestrator")


class DeviceOrchestrator:
    """Connection orchestration for the measurement and position devices."""

    def __init__(
        self,
        config: StationConfig,
        measurement_driver: MeasurementDriver,
        position_driver: PositionDriver,
        *,
        persistence: Optional[PersistenceSink] = None,
    ) -> None:
        self.config = config
        self.position_driver = position_driver
        self.persistence = persistence

        self._connections: Dict[DeviceKind, DeviceConnection] = {
            DeviceKind.MEASUREMENT: DeviceConnection(
                DeviceKind.MEASUREMENT,
                measurement_driver,
                max_retries=config.max_retries,
                auto_reconnect=config.measurement_auto_reconnect,
                connect_busy_timeout=config.connect_busy_timeout,
                disconnect_timeout=config.disconnect_timeout,
            ),
            DeviceKind.POSITION: DeviceConnection(
                DeviceKind.POSITION,
                position_driver,
                max_retries=config.max_retries,
                auto_reconnect=config.position_auto_reconnect,
                connect_busy_timeout=config.connect_busy_timeout,
                disconnect_timeout=config.disconnect_timeout,
            ),
        }
        intervals = {
            DeviceKind.MEASUREMENT: config.measurement_reconnect_interval,
            DeviceKind.POSITION: config.position_reconnect_interval,
        }
        self._timers: Dict[DeviceKind, PeriodicTask] = {
            kind: PeriodicTask(
                f"reconnect:{kind.value}",
                intervals[kind],
                connection.auto_reconnect_tick,
                logger=logger,
            )
            for kind, connection in self._connections.items()
        }
        self._startup_tasks: Set[asyncio.Task[Any]] = set()

        self._connections[DeviceKind.MEASUREMENT].add_sample_listener(self._persist_sample)

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        for timer in self._timers.values():
            timer.start()
        if self.config.auto_connect_on_start:
            for kind in self._connections:
                create_logged_task(
                    self._initial_connect(kind),
                    logger=logger,
                    context=f"auto-connect:{kind.value}",
                    pending=self._startup_tasks,
                )
        logger.info(
            "Device orchestrator started (auto-connect=%s)", self.config.auto_connect_on_start
        )

    async def stop_timers(self) -> None:
        await asyncio.gather(*(timer.stop() for timer in self._timers.values()))
        for task in list(self._startup_tasks):
            task.cancel()
        if self._startup_tasks:
            await asyncio.gather(*self._startup_tasks, return_exceptions=True)

    async def stop(self) -> None:
        """Stop timers and release the device channels."""
        await self.stop_timers()
        for connection in self._connections.values():
            await connection.close()
        logger.info("Device orchestrator stopped")

    async def _initial_connect(self, kind: DeviceKind) -> None:
        try:
            port = await self.connect(kind)
        except DeviceError as exc:
            logger.info("Initial %s connection failed: %s", kind.value, exc.reason)
            return
        logger.info("Initial %s connection established on %s", kind.value, port)

    # ------------------------------------------------------------------
    # Operations

    def connection(self, kind: DeviceKind | str) -> DeviceConnection:
        return self._connections[DeviceKind.parse(kind)]

    async def connect(self, kind: DeviceKind | str, port: Optional[str] = None) -> str:
        return await self.connection(kind).connect(port)

    async def disconnect(self, kind: DeviceKind | str) -> None:
        await self.connection(kind).disconnect()

    async def disconnect_all(self) -> Dict[DeviceKind, Optional[BaseException]]:
        """Disconnect both devices concurrently.

        Maps each kind to None on success or the exception its teardown raised.
        """
        kinds = list(self._connections)
        results = await asyncio.gather(
            *(self._connections[kind].disconnect() for kind in kinds),
            return_exceptions=True,
        )
        return {
            kind: result if isinstance(result, BaseException) else None
            for kind, result in zip(kinds, results)
        }

    def get_device_status(self, kind: DeviceKind | str) -> DeviceStatus:
        return self.connection(kind).status()

    def get_all_status(self) -> Dict[str, DeviceStatus]:
        return {kind.value: connection.status() for kind, connection in self._connections.items()}

    @property
    def channels(self) -> List[EventChannel]:
        return [connection.channel for connection in self._connections.values()]

    # ------------------------------------------------------------------
    # Sample forwarding

    def _persist_sample(self, sample: Dict[str, Any]) -> None:
        if self.persistence is None:
            return
        try:
            logging_active = self.position_driver.is_logging_active()
        except Exception as exc:
            logger.debug("Could not query logging state: %s", exc)
            return
        if not logging_active:
            return
        try:
            self.persistence.append(sample)
        except Exception as exc:
            logger.error("Persisting measurement sample failed: %s", exc)


__all__ = ["DeviceOrchestrator"]
