"""
Driver contracts consumed by the device orchestrator.

Drivers own the wire protocol of their device. The orchestrator only drives
them through these operations and never issues a second ``connect`` while
``is_busy()`` is true.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from .types import ScanCandidate

SampleCallback = Callable[[Dict[str, Any]], None]
DisconnectCallback = Callable[[Optional[str]], None]


@runtime_checkable
class MeasurementDriver(Protocol):
    async def scan(self) -> List[ScanCandidate]:
        """Probe candidate ports in discovery order."""
        ...

    async def connect(self, port: str) -> str:
        """Open ``port`` and complete the handshake. Returns the active port."""
        ...

    async def disconnect(self) -> None:
        ...

    def on_sample(self, callback: SampleCallback) -> None:
        ...

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        """Register a callback for link loss not requested by ``disconnect``."""
        ...

    def is_busy(self) -> bool:
        """True while the driver itself is mid-handshake."""
        ...


@runtime_checkable
class PositionDriver(MeasurementDriver, Protocol):
    def is_logging_active(self) -> bool:
        """True while a measurement logging session is running."""
        ...


@runtime_checkable
class PersistenceSink(Protocol):
    def append(self, sample: Dict[str, Any]) -> None:
        """Store one measurement sample. Must not block."""
        ...


__all__ = [
    "DisconnectCallback",
    "MeasurementDriver",
    "PersistenceSink",
    "PositionDriver",
    "SampleCallback",
]
