"""Device connection orchestration."""

from .connection import DeviceConnection
from .drivers import MeasurementDriver, PersistenceSink, PositionDriver
from .orchestrator import DeviceOrchestrator
from .serial_ports import SerialPortInfo, list_serial_ports, order_ports
from .types import (
    ConnectionState,
    DeviceHandle,
    DeviceKind,
    DeviceStatus,
    IN_FLIGHT_STATES,
    ScanCandidate,
)

__all__ = [
    "ConnectionState",
    "DeviceConnection",
    "DeviceHandle",
    "DeviceKind",
    "DeviceOrchestrator",
    "DeviceStatus",
    "IN_FLIGHT_STATES",
    "MeasurementDriver",
    "PersistenceSink",
    "PositionDriver",
    "ScanCandidate",
    "SerialPortInfo",
    "list_serial_ports",
    "order_ports",
]
