"""Unit test fixtures.

Unit tests run without hardware: drivers, probes and observers are fakes
from tests/infrastructure/mocks.
"""

from __future__ import annotations

import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest

from tests.infrastructure.mocks.driver_mocks import FakeDriver, identified
from xl2_station.core import platform_profile
from xl2_station.core.config import StationConfig
from xl2_station.core.devices.types import DeviceKind
from xl2_station.core.health.types import DiskSpace, ThrottleState
from xl2_station.core.platform_profile import PlatformProfile, PlatformTier, profile_for_tier


@pytest.fixture(autouse=True)
def reset_profile_cache():
    """Keep the process-wide platform profile cache out of other tests."""
    platform_profile.reset_platform_profile()
    yield
    platform_profile.reset_platform_profile()


@pytest.fixture
def pi4_profile() -> PlatformProfile:
    """PI4 tier: warning 70C, critical 80C, 1024MB minimum disk, 10 clients."""
    return profile_for_tier(PlatformTier.PI4, "Raspberry Pi 4 Model B Rev 1.4")


@pytest.fixture
def fast_profile(pi4_profile: PlatformProfile) -> PlatformProfile:
    return dataclasses.replace(pi4_profile, monitoring_interval_ms=10)


@pytest.fixture
def station_config() -> StationConfig:
    """Config with short timers so lifecycle tests finish quickly."""
    return StationConfig(
        max_retries=3,
        measurement_reconnect_interval=0.01,
        position_reconnect_interval=0.01,
        connect_busy_timeout=0.1,
        disconnect_timeout=0.1,
    )


@pytest.fixture
def measurement_driver() -> FakeDriver:
    return FakeDriver(DeviceKind.MEASUREMENT, candidates=[identified("/dev/ttyUSB0")])


@pytest.fixture
def position_driver() -> FakeDriver:
    return FakeDriver(DeviceKind.POSITION, candidates=[identified("/dev/ttyUSB1")])


@pytest.fixture
def healthy_probe() -> MagicMock:
    """Probe reporting a cool, unthrottled host with plenty of disk."""
    probe = MagicMock()
    probe.read_temperature = AsyncMock(return_value=45.0)
    probe.read_throttle_state = AsyncMock(return_value=ThrottleState(active=False, raw=0))
    probe.read_disk_space = AsyncMock(
        return_value=DiskSpace(available_mb=20000.0, used_percent=40.0, total_mb=32000.0)
    )
    probe.read_memory = AsyncMock(return_value=35.5)
    probe.read_load = AsyncMock(return_value=12.5)
    return probe
