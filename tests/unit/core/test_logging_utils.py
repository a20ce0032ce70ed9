"""Unit tests for the station logging helpers."""

from __future__ import annotations

import logging

from xl2_station.core.logging_config import coerce_level
from xl2_station.core.logging_utils import (
    StructuredLogger,
    ensure_structured_logger,
    get_module_logger,
)


class TestStructuredLogger:

    def test_namespace_and_component(self):
        logger = get_module_logger("BroadcastHub")

        assert logger.name == "xl2_station.BroadcastHub"
        assert logger.component == "BroadcastHub"

    def test_messages_are_tagged(self, caplog):
        logger = get_module_logger("DeviceConnection")

        with caplog.at_level(logging.INFO, logger="xl2_station"):
            logger.info("%s: %s -> %s", "measurement", "idle", "scanning")

        assert caplog.messages == ["[DeviceConnection] measurement: idle -> scanning"]

    def test_bad_format_args_do_not_raise(self, caplog):
        logger = get_module_logger("Probe")

        with caplog.at_level(logging.WARNING, logger="xl2_station"):
            logger.warning("value %d", "not-a-number")

        assert caplog.messages == ["[Probe] value %d | args=not-a-number"]

    def test_ensure_structured_logger(self):
        plain = logging.getLogger("xl2_station.Plain")
        structured = get_module_logger("Already")

        assert ensure_structured_logger(structured) is structured
        assert isinstance(ensure_structured_logger(plain), StructuredLogger)
        assert ensure_structured_logger(None, fallback_name="Timer").name == "xl2_station.Timer"


class TestCoerceLevel:

    def test_names_and_numbers(self):
        assert coerce_level("info") == logging.INFO
        assert coerce_level("WARN") == logging.WARNING
        assert coerce_level(10) == logging.DEBUG
