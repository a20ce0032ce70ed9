"""Unit tests for station configuration loading."""

from __future__ import annotations

import pytest

from xl2_station.core.config import (
    DEFAULT_MEASUREMENT_PORTS,
    StationConfig,
    config_from_mapping,
    load_config,
    parse_config_lines,
)
from xl2_station.core.errors import ConfigError


class TestParseConfigLines:

    def test_comments_quotes_and_blank_lines(self):
        lines = [
            "# station settings",
            "",
            "port = 3100",
            'host = "127.0.0.1"',
            "log_level = debug  # verbose while commissioning",
            "not a setting",
            "throttle_command = 'vcgencmd get_throttled'",
        ]

        assert parse_config_lines(lines) == {
            "port": "3100",
            "host": "127.0.0.1",
            "log_level": "debug",
            "throttle_command": "vcgencmd get_throttled",
        }


class TestConfigFromMapping:

    def test_defaults(self):
        config = config_from_mapping({})

        assert config == StationConfig()
        assert config.port == 3000
        assert config.max_retries == 10
        assert config.measurement_reconnect_interval == 60.0
        assert config.position_reconnect_interval == 45.0
        assert config.measurement_ports == DEFAULT_MEASUREMENT_PORTS

    def test_coercion(self):
        config = config_from_mapping(
            {
                "port": "8080",
                "measurement_auto_reconnect": "no",
                "auto_connect_on_start": "Yes",
                "position_reconnect_interval": "12.5",
                "measurement_ports": "/dev/ttyUSB3, /dev/xl2 ,",
                "max_clients": "4",
                "temperature_warning_c": "",
            }
        )

        assert config.port == 8080
        assert config.measurement_auto_reconnect is False
        assert config.auto_connect_on_start is True
        assert config.position_reconnect_interval == 12.5
        assert config.measurement_ports == ("/dev/ttyUSB3", "/dev/xl2")
        assert config.max_clients == 4
        assert config.temperature_warning_c is None

    def test_unknown_keys_kept_as_extras(self):
        config = config_from_mapping({"gps_baud": "9600"})

        assert config.extras == {"gps_baud": "9600"}

    @pytest.mark.parametrize(
        "values, key",
        [
            ({"port": "http"}, "port"),
            ({"measurement_auto_reconnect": "maybe"}, "measurement_auto_reconnect"),
            ({"disconnect_timeout": "fast"}, "disconnect_timeout"),
            ({"max_retries": "-1"}, "max_retries"),
            ({"observer_queue_size": "0"}, "observer_queue_size"),
            ({"monitoring_interval_ms": "0"}, "monitoring_interval_ms"),
            ({"monitoring_interval_ms": "-500"}, "monitoring_interval_ms"),
            ({"max_clients": "0"}, "max_clients"),
            ({"min_disk_space_mb": "-1"}, "min_disk_space_mb"),
            (
                {"temperature_warning_c": "80", "temperature_critical_c": "80"},
                "temperature_warning_c",
            ),
        ],
    )
    def test_invalid_values(self, values, key):
        with pytest.raises(ConfigError) as exc_info:
            config_from_mapping(values)

        assert exc_info.value.key == key

    def test_profile_overrides_skip_unset(self):
        config = StationConfig(max_clients=3, temperature_critical_c=90.0)

        assert config.profile_overrides() == {
            "max_clients": 3,
            "max_temperature_critical_c": 90.0,
        }


class TestLoadConfig:

    @pytest.mark.asyncio
    async def test_missing_file_gives_defaults(self, tmp_path):
        assert await load_config(tmp_path / "absent.txt") == StationConfig()

    @pytest.mark.asyncio
    async def test_none_gives_defaults(self):
        assert await load_config(None) == StationConfig()

    @pytest.mark.asyncio
    async def test_reads_file(self, tmp_path):
        path = tmp_path / "config.txt"
        path.write_text("port = 3500\nmax_retries = 4\nposition_driver = drivers.gps:make\n")

        config = await load_config(path)

        assert config.port == 3500
        assert config.max_retries == 4
        assert config.position_driver == "drivers.gps:make"
