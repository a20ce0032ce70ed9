"""
Simulated drivers for bench use without hardware.

Both drivers "find" their device on one configured port, take a short
handshake delay during which ``is_busy()`` is true, and then publish a
synthetic sample on a fixed cadence until disconnected.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Dict, List, Optional, Sequence

from ..core.asyncio_utils import PeriodicTask
from ..core.devices.drivers import DisconnectCallback, SampleCallback
from ..core.devices.types import DeviceKind, ScanCandidate
from ..core.errors import ConnectFailed
from ..core.logging_utils import get_module_logger

logger = get_module_logger("SimulatedDriver")


class SimulatedDriver:
    """Common behaviour of the simulated drivers."""

    kind: DeviceKind = DeviceKind.MEASUREMENT
    model = "simulated"

    def __init__(
        self,
        ports: Sequence[str],
        *,
        identified_port: Optional[str] = None,
        handshake_delay: float = 0.2,
        sample_interval: float = 1.0,
    ) -> None:
        self.ports = list(ports)
        self.identified_port = identified_port or (self.ports[0] if self.ports else None)
        self.handshake_delay = handshake_delay
        self.sample_interval = sample_interval

        self._port: Optional[str] = None
        self._busy = False
        self._sample_callbacks: List[SampleCallback] = []
        self._disconnect_callbacks: List[DisconnectCallback] = []
        self._sampler: Optional[PeriodicTask] = None

    @property
    def port(self) -> Optional[str]:
        return self._port

    async def scan(self) -> List[ScanCandidate]:
        await asyncio.sleep(0)
        return [
            ScanCandidate(
                port=port,
                identified=port == self.identified_port,
                info={"model": self.model} if port == self.identified_port else {},
            )
            for port in self.ports
        ]

    async def connect(self, port: str) -> str:
        self._busy = True
        try:
            await asyncio.sleep(self.handshake_delay)
            if port != self.identified_port:
                raise ConnectFailed(self.kind, f"no response on {port}", port=port)
            self._port = port
        finally:
            self._busy = False

        if self._sampler is not None:
            await self._sampler.stop()
        self._sampler = PeriodicTask(
            f"simulated:{self.kind.value}", self.sample_interval, self._emit_sample, logger=logger
        )
        self._sampler.start()
        logger.info("Simulated %s online on %s", self.kind.value, port)
        return port

    async def disconnect(self) -> None:
        if self._sampler is not None:
            await self._sampler.stop()
            self._sampler = None
        self._port = None

    def on_sample(self, callback: SampleCallback) -> None:
        self._sample_callbacks.append(callback)

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        self._disconnect_callbacks.append(callback)

    def is_busy(self) -> bool:
        return self._busy

    async def simulate_link_loss(self, reason: str = "cable unplugged") -> None:
        """Drop the link as if the device vanished."""
        await self.disconnect()
        for callback in list(self._disconnect_callbacks):
            callback(reason)

    async def _emit_sample(self) -> None:
        sample = self.make_sample()
        for callback in list(self._sample_callbacks):
            callback(sample)

    def make_sample(self) -> Dict[str, Any]:
        raise NotImplementedError


class SimulatedMeasurementDriver(SimulatedDriver):
    """Sound level meter producing broadband levels."""

    kind = DeviceKind.MEASUREMENT
    model = "XL2 (simulated)"

    def make_sample(self) -> Dict[str, Any]:
        laeq = random.gauss(55.0, 4.0)
        return {
            "timestamp": time.time(),
            "port": self._port,
            "laeq": round(laeq, 1),
            "lafmax": round(laeq + abs(random.gauss(6.0, 2.0)), 1),
            "lcpeak": round(laeq + abs(random.gauss(18.0, 3.0)), 1),
        }


class SimulatedPositionDriver(SimulatedDriver):
    """GNSS receiver wandering around a fixed origin."""

    kind = DeviceKind.POSITION
    model = "GNSS (simulated)"

    def __init__(
        self,
        ports: Sequence[str],
        *,
        origin: tuple = (47.3769, 8.5417),
        **kwargs: Any,
    ) -> None:
        super().__init__(ports, **kwargs)
        self.latitude, self.longitude = origin
        self._logging_active = False

    def start_logging(self) -> None:
        self._logging_active = True
        logger.info("Simulated logging session started")

    def stop_logging(self) -> None:
        self._logging_active = False
        logger.info("Simulated logging session stopped")

    def is_logging_active(self) -> bool:
        return self._logging_active

    def make_sample(self) -> Dict[str, Any]:
        self.latitude += random.uniform(-1e-5, 1e-5)
        self.longitude += random.uniform(-1e-5, 1e-5)
        return {
            "timestamp": time.time(),
            "latitude": round(self.latitude, 7),
            "longitude": round(self.longitude, 7),
            "altitude": round(random.gauss(408.0, 0.5), 1),
            "satellites": random.randint(6, 12),
            "fix": True,
        }


__all__ = ["SimulatedDriver", "SimulatedMeasurementDriver", "SimulatedPositionDriver"]
