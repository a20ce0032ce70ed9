"""Unit tests for driver loading and the simulated drivers."""

from __future__ import annotations

import asyncio

import pytest

from tests.infrastructure.mocks.driver_mocks import FakeDriver
from xl2_station.core.config import StationConfig
from xl2_station.core.devices.connection import DeviceConnection
from xl2_station.core.devices.types import ConnectionState, DeviceKind
from xl2_station.core.errors import ConfigError, ConnectFailed
from xl2_station.drivers import (
    SimulatedMeasurementDriver,
    SimulatedPositionDriver,
    load_driver,
)


class TestLoadDriver:

    def test_simulated_by_default(self):
        config = StationConfig()

        measurement = load_driver(DeviceKind.MEASUREMENT, config)
        position = load_driver(DeviceKind.POSITION, config)

        assert isinstance(measurement, SimulatedMeasurementDriver)
        assert isinstance(position, SimulatedPositionDriver)
        assert measurement.ports == list(config.measurement_ports)

    def test_factory_path(self):
        config = StationConfig(
            measurement_driver="tests.infrastructure.mocks.driver_mocks:make_fake_driver",
            measurement_ports=("/dev/ttyUSB7",),
        )

        driver = load_driver(DeviceKind.MEASUREMENT, config)

        assert isinstance(driver, FakeDriver)
        assert [c.port for c in driver.candidates] == ["/dev/ttyUSB7"]

    @pytest.mark.parametrize(
        "target",
        [
            "no_colon_here",
            "xl2_station_missing_module:factory",
            "xl2_station.drivers.simulated:does_not_exist",
            "xl2_station.drivers:SIMULATED",
        ],
    )
    def test_bad_driver_target(self, target):
        config = StationConfig(position_driver=target)

        with pytest.raises(ConfigError) as exc_info:
            load_driver(DeviceKind.POSITION, config)

        assert exc_info.value.key == "position_driver"


class TestSimulatedDrivers:

    @pytest.mark.asyncio
    async def test_scan_identifies_one_port(self):
        driver = SimulatedMeasurementDriver(["/dev/ttyUSB0", "/dev/xl2"], identified_port="/dev/xl2")

        candidates = await driver.scan()

        assert [(c.port, c.identified) for c in candidates] == [
            ("/dev/ttyUSB0", False),
            ("/dev/xl2", True),
        ]

    @pytest.mark.asyncio
    async def test_busy_during_handshake(self):
        driver = SimulatedMeasurementDriver(["/dev/xl2"], handshake_delay=0.05)

        task = asyncio.create_task(driver.connect("/dev/xl2"))
        await asyncio.sleep(0.01)
        assert driver.is_busy()

        assert await task == "/dev/xl2"
        assert not driver.is_busy()
        await driver.disconnect()

    @pytest.mark.asyncio
    async def test_wrong_port_fails(self):
        driver = SimulatedMeasurementDriver(["/dev/xl2", "/dev/ttyUSB0"], handshake_delay=0)

        with pytest.raises(ConnectFailed):
            await driver.connect("/dev/ttyUSB0")

        assert driver.port is None
        assert not driver.is_busy()

    @pytest.mark.asyncio
    async def test_samples_until_disconnect(self):
        driver = SimulatedMeasurementDriver(["/dev/xl2"], handshake_delay=0, sample_interval=0.01)
        samples = []
        driver.on_sample(samples.append)

        await driver.connect("/dev/xl2")
        await asyncio.sleep(0.05)
        await driver.disconnect()
        count = len(samples)
        await asyncio.sleep(0.03)

        assert count >= 2
        assert len(samples) == count
        assert {"laeq", "lafmax", "lcpeak"} <= samples[0].keys()
        assert samples[0]["lafmax"] >= samples[0]["laeq"]

    @pytest.mark.asyncio
    async def test_position_logging_flag(self):
        driver = SimulatedPositionDriver(["/dev/gps"], handshake_delay=0)

        assert not driver.is_logging_active()
        driver.start_logging()
        assert driver.is_logging_active()
        driver.stop_logging()
        assert not driver.is_logging_active()

        sample = driver.make_sample()
        assert sample["fix"] is True
        assert abs(sample["latitude"] - 47.3769) < 0.001

    @pytest.mark.asyncio
    async def test_link_loss_reaches_connection(self):
        driver = SimulatedPositionDriver(["/dev/gps"], handshake_delay=0, sample_interval=10.0)
        connection = DeviceConnection(DeviceKind.POSITION, driver, auto_reconnect=False)

        await connection.connect()
        await driver.simulate_link_loss()

        status = connection.status()
        assert status.state is ConnectionState.IDLE
        assert status.active_port is None
        await connection.close()
