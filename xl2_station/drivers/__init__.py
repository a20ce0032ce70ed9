"""
Device driver loading.

A driver is selected per device by a config string:

    simulated                    built-in bench simulator
    package.module:factory       ``factory(config)`` returns the driver
"""

from __future__ import annotations

import importlib
from typing import Any, Callable

from ..core.config import StationConfig
from ..core.devices.types import DeviceKind
from ..core.errors import ConfigError
from ..core.logging_utils import get_module_logger
from .simulated import SimulatedDriver, SimulatedMeasurementDriver, SimulatedPositionDriver

logger = get_module_logger("Drivers")

SIMULATED = "simulated"


def _config_key(kind: DeviceKind) -> str:
    return f"{kind.value}_driver"


def _resolve_factory(kind: DeviceKind, target: str) -> Callable[[StationConfig], Any]:
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(_config_key(kind), f"expected 'package.module:factory', got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(_config_key(kind), f"cannot import {module_name}: {exc}") from exc
    try:
        factory = getattr(module, attr)
    except AttributeError:
        raise ConfigError(_config_key(kind), f"{module_name} has no attribute {attr!r}") from None
    if not callable(factory):
        raise ConfigError(_config_key(kind), f"{target} is not callable")
    return factory


def load_driver(kind: DeviceKind, config: StationConfig) -> Any:
    """Instantiate the driver configured for ``kind``."""
    target = config.measurement_driver if kind is DeviceKind.MEASUREMENT else config.position_driver

    if target == SIMULATED:
        if kind is DeviceKind.MEASUREMENT:
            driver = SimulatedMeasurementDriver(config.measurement_ports)
        else:
            driver = SimulatedPositionDriver(config.position_ports)
        logger.info("Using simulated %s driver", kind.value)
        return driver

    driver = _resolve_factory(kind, target)(config)
    logger.info("Loaded %s driver from %s", kind.value, target)
    return driver


__all__ = [
    "SIMULATED",
    "SimulatedDriver",
    "SimulatedMeasurementDriver",
    "SimulatedPositionDriver",
    "load_driver",
]
