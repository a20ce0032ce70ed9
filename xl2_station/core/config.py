"""
Station configuration.

The configuration is a single immutable StationConfig built once at startup
and handed to every component constructor. It is read from a plain
``key = value`` text file (``#`` starts a comment, values may be quoted).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import aiofiles

from .errors import ConfigError
from .logging_utils import get_module_logger

logger = get_module_logger("StationConfig")

DEFAULT_MEASUREMENT_PORTS = ("/dev/xl2", "/dev/ttyUSB0", "/dev/ttyACM0", "/dev/ttyAMA0")
DEFAULT_POSITION_PORTS = ("/dev/gps", "/dev/ttyUSB1", "/dev/ttyUSB2", "/dev/ttyACM1")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class StationConfig:
    """Immutable station configuration."""

    log_level: str = "info"
    log_file: Optional[str] = None

    host: str = "0.0.0.0"
    port: int = 3000

    measurement_driver: str = "simulated"
    position_driver: str = "simulated"
    measurement_ports: Tuple[str, ...] = DEFAULT_MEASUREMENT_PORTS
    position_ports: Tuple[str, ...] = DEFAULT_POSITION_PORTS

    measurement_auto_reconnect: bool = True
    position_auto_reconnect: bool = True
    auto_connect_on_start: bool = False
    max_retries: int = 10
    measurement_reconnect_interval: float = 60.0
    position_reconnect_interval: float = 45.0
    connect_busy_timeout: float = 5.0
    disconnect_timeout: float = 5.0

    observer_queue_size: int = 256

    disk_path: str = "/"
    thermal_zone_path: str = "/sys/class/thermal/thermal_zone0/temp"
    throttle_command: str = "vcgencmd get_throttled"

    # Tier threshold overrides; None keeps the tier default
    temperature_warning_c: Optional[float] = None
    temperature_critical_c: Optional[float] = None
    min_disk_space_mb: Optional[int] = None
    max_clients: Optional[int] = None
    monitoring_interval_ms: Optional[int] = None

    extras: Dict[str, str] = field(default_factory=dict, compare=False)

    def profile_overrides(self) -> Dict[str, Any]:
        """Threshold overrides to apply on top of the resolved platform tier."""
        mapping = {
            "max_temperature_warning_c": self.temperature_warning_c,
            "max_temperature_critical_c": self.temperature_critical_c,
            "min_disk_space_mb": self.min_disk_space_mb,
            "max_clients": self.max_clients,
            "monitoring_interval_ms": self.monitoring_interval_ms,
        }
        return {key: value for key, value in mapping.items() if value is not None}

    def with_overrides(self, **changes: Any) -> "StationConfig":
        return dataclasses.replace(self, **changes)


# ----------------------------------------------------------------------
# Parsing helpers

def parse_config_lines(lines: Iterable[str]) -> Dict[str, str]:
    config: Dict[str, str] = {}

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith('#'):
            continue
        if '=' not in line:
            continue

        key, value = line.split('=', 1)
        key = key.strip()
        value = value.strip()

        if '#' in value:
            value = value.split('#')[0].strip()

        if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
            value = value[1:-1]

        config[key] = value

    return config


def _coerce(key: str, raw: str, target: Any) -> Any:
    if target is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(key, f"expected a boolean, got {raw!r}")
    if target is int:
        try:
            return int(raw)
        except ValueError:
            raise ConfigError(key, f"expected an integer, got {raw!r}") from None
    if target is float:
        try:
            return float(raw)
        except ValueError:
            raise ConfigError(key, f"expected a number, got {raw!r}") from None
    if target is tuple:
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    return raw


# Field name -> (type used for coercion, allows empty value meaning None)
_FIELD_TYPES: Dict[str, Tuple[Any, bool]] = {
    "log_level": (str, False),
    "log_file": (str, True),
    "host": (str, False),
    "port": (int, False),
    "measurement_driver": (str, False),
    "position_driver": (str, False),
    "measurement_ports": (tuple, False),
    "position_ports": (tuple, False),
    "measurement_auto_reconnect": (bool, False),
    "position_auto_reconnect": (bool, False),
    "auto_connect_on_start": (bool, False),
    "max_retries": (int, False),
    "measurement_reconnect_interval": (float, False),
    "position_reconnect_interval": (float, False),
    "connect_busy_timeout": (float, False),
    "disconnect_timeout": (float, False),
    "observer_queue_size": (int, False),
    "disk_path": (str, False),
    "thermal_zone_path": (str, False),
    "throttle_command": (str, False),
    "temperature_warning_c": (float, True),
    "temperature_critical_c": (float, True),
    "min_disk_space_mb": (int, True),
    "max_clients": (int, True),
    "monitoring_interval_ms": (int, True),
}

_POSITIVE_FIELDS = (
    "measurement_reconnect_interval",
    "position_reconnect_interval",
    "connect_busy_timeout",
    "disconnect_timeout",
    "observer_queue_size",
)

# Overrides that must be positive when set
_POSITIVE_OVERRIDES = ("max_clients", "monitoring_interval_ms")


def config_from_mapping(values: Mapping[str, str]) -> StationConfig:
    """Build a StationConfig from raw string values."""
    kwargs: Dict[str, Any] = {}
    extras: Dict[str, str] = {}

    for key, raw in values.items():
        field_type = _FIELD_TYPES.get(key)
        if field_type is None:
            logger.warning("Ignoring unknown config key: %s", key)
            extras[key] = raw
            continue
        target, nullable = field_type
        if nullable and raw.strip() == "":
            kwargs[key] = None
            continue
        kwargs[key] = _coerce(key, raw, target)

    config = StationConfig(extras=extras, **kwargs)
    _validate(config)
    return config


def _validate(config: StationConfig) -> None:
    if config.max_retries < 0:
        raise ConfigError("max_retries", "must be >= 0")
    for name in _POSITIVE_FIELDS:
        if getattr(config, name) <= 0:
            raise ConfigError(name, "must be positive")
    for name in _POSITIVE_OVERRIDES:
        value = getattr(config, name)
        if value is not None and value <= 0:
            raise ConfigError(name, "must be positive")
    if config.min_disk_space_mb is not None and config.min_disk_space_mb < 0:
        raise ConfigError("min_disk_space_mb", "must be >= 0")
    if (
        config.temperature_warning_c is not None
        and config.temperature_critical_c is not None
        and config.temperature_warning_c >= config.temperature_critical_c
    ):
        raise ConfigError("temperature_warning_c", "must be below temperature_critical_c")


async def load_config(path: Optional[Path] = None) -> StationConfig:
    """Load configuration from ``path``; a missing file yields defaults."""
    if path is None:
        return StationConfig()

    config_path = Path(path)
    if not config_path.exists():
        logger.info("Config file %s not found, using defaults", config_path)
        return StationConfig()

    async with aiofiles.open(config_path, 'r', encoding='utf-8') as fh:
        content = await fh.read()

    values = parse_config_lines(content.splitlines())
    config = config_from_mapping(values)
    logger.info("Loaded %d config values from %s", len(values), config_path)
    return config


__all__ = [
    "DEFAULT_MEASUREMENT_PORTS",
    "DEFAULT_POSITION_PORTS",
    "StationConfig",
    "config_from_mapping",
    "load_config",
    "parse_config_lines",
]
