"""Value types produced by the health probe and monitor."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class ThrottleReason(Enum):
    """Reasons reported by the firmware throttle register.

    Declaration order is the fixed reporting order.
    """
    UNDER_VOLTAGE = "under-voltage"
    FREQ_CAPPED = "frequency-capped"
    TEMP_LIMITED = "temperature-limit"


THROTTLE_REPORT_ORDER = tuple(ThrottleReason)


class TemperatureStatus(Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ThrottleState:
    """Decoded throttle state.

    Attributes:
        active: A throttling condition is present right now
        reasons: Conditions currently present
        raw: Raw firmware bitmask, if one was read
    """
    active: bool = False
    reasons: FrozenSet[ThrottleReason] = frozenset()
    raw: Optional[int] = None

    def ordered_reasons(self) -> List[ThrottleReason]:
        return [reason for reason in THROTTLE_REPORT_ORDER if reason in self.reasons]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "reasons": [reason.value for reason in self.ordered_reasons()],
            "raw": hex(self.raw) if self.raw is not None else None,
        }


@dataclass(frozen=True)
class DiskSpace:
    available_mb: float
    used_percent: float
    total_mb: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "availableMB": round(self.available_mb, 1),
            "usedPercent": round(self.used_percent, 1),
            "totalMB": round(self.total_mb, 1) if self.total_mb is not None else None,
        }


@dataclass(frozen=True)
class HealthSample:
    """One monitoring tick's worth of host vital signs.

    Any field except ``timestamp`` may be None when its probe failed.
    """
    timestamp: float = field(default_factory=time.time)
    temperature_c: Optional[float] = None
    throttling: Optional[ThrottleState] = None
    disk: Optional[DiskSpace] = None
    memory_used_percent: Optional[float] = None
    load_1m_percent: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "cpuTemp": self.temperature_c,
            "throttled": self.throttling.active if self.throttling else False,
            "throttling": self.throttling.to_dict() if self.throttling else None,
            "disk": self.disk.to_dict() if self.disk else None,
            "diskSpace": round(self.disk.available_mb, 1) if self.disk else None,
            "memoryUsage": self.memory_used_percent,
            "systemLoad": self.load_1m_percent,
        }


__all__ = [
    "DiskSpace",
    "HealthSample",
    "THROTTLE_REPORT_ORDER",
    "TemperatureStatus",
    "ThrottleReason",
    "ThrottleState",
]
