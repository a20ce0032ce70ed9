"""Host health sampling and classification."""

from .monitor import (
    HealthMonitor,
    WARNING_DISK_SPACE,
    WARNING_TEMPERATURE,
    WARNING_THROTTLING,
    classify_temperature,
)
from .probe import HealthProbe, SystemHealthProbe, decode_throttle_mask, parse_throttled_output
from .types import (
    DiskSpace,
    HealthSample,
    THROTTLE_REPORT_ORDER,
    TemperatureStatus,
    ThrottleReason,
    ThrottleState,
)

__all__ = [
    "DiskSpace",
    "HealthMonitor",
    "HealthProbe",
    "HealthSample",
    "SystemHealthProbe",
    "THROTTLE_REPORT_ORDER",
    "TemperatureStatus",
    "ThrottleReason",
    "ThrottleState",
    "WARNING_DISK_SPACE",
    "WARNING_TEMPERATURE",
    "WARNING_THROTTLING",
    "classify_temperature",
    "decode_throttle_mask",
    "parse_throttled_output",
]
