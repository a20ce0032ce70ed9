"""Device connection types."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class DeviceKind(Enum):
    """The two serial peripherals of a station."""
    MEASUREMENT = "measurement"
    POSITION = "position"

    @classmethod
    def parse(cls, value: "str | DeviceKind") -> "DeviceKind":
        """Accept a DeviceKind or its value (``xl2``/``gps`` aliases too)."""
        if isinstance(value, cls):
            return value
        lowered = str(value).strip().lower()
        alias = _KIND_ALIASES.get(lowered, lowered)
        return cls(alias)


_KIND_ALIASES = {
    "xl2": "measurement",
    "gps": "position",
}


class ConnectionState(Enum):
    """Connection state of one device."""
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


IN_FLIGHT_STATES: FrozenSet[ConnectionState] = frozenset(
    {ConnectionState.SCANNING, ConnectionState.CONNECTING}
)


@dataclass(frozen=True)
class ScanCandidate:
    """One port reported by a driver's discovery scan.

    Attributes:
        port: Serial device path
        identified: The driver positively identified its device on this port
        info: Driver-specific identification details
    """
    port: str
    identified: bool = False
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeviceStatus:
    """Read-only snapshot of a DeviceHandle."""
    kind: DeviceKind
    state: ConnectionState
    active_port: Optional[str]
    in_flight: bool
    retry_count: int
    last_error: Optional[str]
    time_in_state: float

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "state": self.state.value,
            "connected": self.connected,
            "port": self.active_port,
            "inFlight": self.in_flight,
            "retryCount": self.retry_count,
            "lastError": self.last_error,
            "timeInState": round(self.time_in_state, 1),
        }


@dataclass
class DeviceHandle:
    """Mutable connection state of one device.

    Owned by exactly one DeviceConnection; everyone else reads snapshots.
    """
    kind: DeviceKind
    state: ConnectionState = ConnectionState.IDLE
    active_port: Optional[str] = None
    in_flight_attempt_id: Optional[str] = None
    retry_count: int = 0
    last_error: Optional[str] = None
    state_entered_at: float = field(default_factory=time.monotonic)

    def time_in_state(self) -> float:
        return time.monotonic() - self.state_entered_at

    def snapshot(self) -> DeviceStatus:
        return DeviceStatus(
            kind=self.kind,
            state=self.state,
            active_port=self.active_port,
            in_flight=self.in_flight_attempt_id is not None,
            retry_count=self.retry_count,
            last_error=self.last_error,
            time_in_state=self.time_in_state(),
        )


__all__ = [
    "ConnectionState",
    "DeviceHandle",
    "DeviceKind",
    "DeviceStatus",
    "IN_FLIGHT_STATES",
    "ScanCandidate",
]
