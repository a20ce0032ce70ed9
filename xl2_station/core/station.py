"""
Station System - wires the station components together.

Construction order follows the dependency order: platform profile, hub,
device orchestrator, health monitor, observer server and finally the
shutdown coordinator that tears them down again.
"""

from __future__ import annotations

from typing import Any, Optional

from ..drivers import load_driver
from .api.server import ObserverServer
from .broadcast_hub import BroadcastHub
from .config import StationConfig
from .devices.drivers import PersistenceSink
from .devices.orchestrator import DeviceOrchestrator
from .devices.types import DeviceKind
from .health.monitor import HealthMonitor
from .health.probe import HealthProbe, SystemHealthProbe
from .logging_utils import get_module_logger
from .platform_profile import PlatformProfile, get_platform_profile
from .shutdown_coordinator import EXIT_FAILURE, ShutdownCoordinator, ShutdownState

logger = get_module_logger("StationSystem")


class StationSystem:
    """The running station: devices, health, fan-out and shutdown."""

    def __init__(
        self,
        config: StationConfig,
        *,
        profile: Optional[PlatformProfile] = None,
        measurement_driver: Any = None,
        position_driver: Any = None,
        probe: Optional[HealthProbe] = None,
        persistence: Optional[PersistenceSink] = None,
        serve: bool = True,
    ) -> None:
        self.config = config
        self.profile = profile or get_platform_profile(config.profile_overrides())

        self.hub = BroadcastHub(
            max_clients=self.profile.max_clients, queue_size=config.observer_queue_size
        )
        self.orchestrator = DeviceOrchestrator(
            config,
            measurement_driver or load_driver(DeviceKind.MEASUREMENT, config),
            position_driver or load_driver(DeviceKind.POSITION, config),
            persistence=persistence,
        )
        self.health_monitor = HealthMonitor(
            self.profile,
            probe
            or SystemHealthProbe(
                thermal_zone_path=config.thermal_zone_path,
                throttle_command=config.throttle_command,
                disk_path=config.disk_path,
            ),
            observer_count=lambda: self.hub.observer_count,
        )
        self.server: Optional[ObserverServer] = None
        if serve:
            self.server = ObserverServer(
                self.hub,
                self.orchestrator,
                self.health_monitor,
                self.profile,
                host=config.host,
                port=config.port,
            )
        self.shutdown = ShutdownCoordinator(
            self.orchestrator,
            hub=self.hub,
            health_monitor=self.health_monitor,
            server=self.server,
        )
        self.shutdown.register_cleanup(self.orchestrator.stop)
        self.shutdown.register_cleanup(self._close_health_channel)

    async def start(self) -> None:
        for channel in (*self.orchestrator.channels, self.health_monitor.channel):
            self.hub.attach(channel)
        await self.orchestrator.start()
        self.health_monitor.start()
        if self.server is not None:
            await self.server.start()
        logger.info("Station running on %s", self.profile)

    async def run(self) -> int:
        """Start the station and block until shutdown. Returns the exit code."""
        try:
            await self.start()
        except Exception as exc:
            logger.error("Station failed to start: %s", exc, exc_info=True)
            await self.shutdown.initiate_shutdown("startup failure")
            return EXIT_FAILURE

        self.shutdown.install_signal_handlers()
        try:
            return await self.shutdown.wait_for_shutdown()
        except KeyboardInterrupt:
            return await self.shutdown.initiate_shutdown("keyboard interrupt")
        finally:
            if self.shutdown.state is ShutdownState.RUNNING:
                await self.shutdown.initiate_shutdown("exit")

    async def _close_health_channel(self) -> None:
        self.health_monitor.channel.close()


__all__ = ["StationSystem"]
