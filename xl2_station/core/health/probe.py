"""
Host health probes.

The HealthProbe protocol is what the HealthMonitor consumes. Every read is
independently fallible and returns None instead of raising, so one missing
signal never aborts the rest of a sample.

SystemHealthProbe reads a Linux / Raspberry Pi host:
- temperature from the thermal zone sysfs file (psutil sensors as fallback)
- throttle state from ``vcgencmd get_throttled``
- disk, memory and load through psutil
"""

from __future__ import annotations

import asyncio
import contextlib
import shlex
from typing import Optional, Protocol, Sequence, runtime_checkable

import aiofiles
import psutil

from ..errors import ProbeUnavailable
from ..logging_utils import get_module_logger
from .types import DiskSpace, ThrottleReason, ThrottleState

logger = get_module_logger("HealthProbe")

_BYTES_PER_MB = 1024 * 1024

# vcgencmd get_throttled bit layout (current conditions only)
_UNDER_VOLTAGE_BIT = 0x1
_FREQ_CAPPED_BIT = 0x2
_THROTTLED_BIT = 0x4
_SOFT_TEMP_LIMIT_BIT = 0x8
_CURRENT_MASK = 0xF


@runtime_checkable
class HealthProbe(Protocol):
    """Source of host vital signs. Each read returns None on failure."""

    async def read_temperature(self) -> Optional[float]:
        ...

    async def read_throttle_state(self) -> Optional[ThrottleState]:
        ...

    async def read_disk_space(self) -> Optional[DiskSpace]:
        ...

    async def read_memory(self) -> Optional[float]:
        ...

    async def read_load(self) -> Optional[float]:
        ...


def decode_throttle_mask(value: int) -> ThrottleState:
    """Decode the firmware throttle bitmask into a ThrottleState."""
    reasons = set()
    if value & _UNDER_VOLTAGE_BIT:
        reasons.add(ThrottleReason.UNDER_VOLTAGE)
    if value & _FREQ_CAPPED_BIT:
        reasons.add(ThrottleReason.FREQ_CAPPED)
    if value & _SOFT_TEMP_LIMIT_BIT:
        reasons.add(ThrottleReason.TEMP_LIMITED)
    return ThrottleState(
        active=bool(value & _CURRENT_MASK),
        reasons=frozenset(reasons),
        raw=value,
    )


def parse_throttled_output(output: str) -> int:
    """Parse ``throttled=0x50005`` into an integer."""
    text = output.strip()
    if "=" not in text:
        raise ValueError(f"unexpected vcgencmd output: {text!r}")
    return int(text.split("=", 1)[1].strip(), 16)


class SystemHealthProbe:
    """HealthProbe backed by sysfs, vcgencmd and psutil."""

    def __init__(
        self,
        thermal_zone_path: str = "/sys/class/thermal/thermal_zone0/temp",
        throttle_command: Sequence[str] | str = ("vcgencmd", "get_throttled"),
        disk_path: str = "/",
        command_timeout: float = 2.0,
    ) -> None:
        self.thermal_zone_path = thermal_zone_path
        if isinstance(throttle_command, str):
            throttle_command = shlex.split(throttle_command)
        self.throttle_command = tuple(throttle_command)
        self.disk_path = disk_path
        self.command_timeout = command_timeout

    # ------------------------------------------------------------------
    # Temperature

    async def read_temperature(self) -> Optional[float]:
        try:
            return await self._read_thermal_zone()
        except ProbeUnavailable as exc:
            logger.debug("%s, trying psutil sensors", exc)
        try:
            return self._read_psutil_temperature()
        except ProbeUnavailable as exc:
            logger.debug("%s", exc)
            return None

    async def _read_thermal_zone(self) -> float:
        try:
            async with aiofiles.open(self.thermal_zone_path, "r") as fh:
                raw = await fh.read()
            return int(raw.strip()) / 1000.0
        except (OSError, ValueError) as exc:
            raise ProbeUnavailable("temperature", str(exc)) from exc

    @staticmethod
    def _read_psutil_temperature() -> float:
        sensors = getattr(psutil, "sensors_temperatures", None)
        if sensors is None:
            raise ProbeUnavailable("temperature", "psutil sensors unsupported")
        try:
            readings = sensors()
        except (OSError, RuntimeError) as exc:
            raise ProbeUnavailable("temperature", str(exc)) from exc
        for name in ("cpu_thermal", "coretemp", "k10temp"):
            entries = readings.get(name)
            if entries:
                return float(entries[0].current)
        raise ProbeUnavailable("temperature", "no CPU sensor reported")

    # ------------------------------------------------------------------
    # Throttling

    async def read_throttle_state(self) -> Optional[ThrottleState]:
        try:
            output = await self._run_command(self.throttle_command)
            return decode_throttle_mask(parse_throttled_output(output))
        except (ProbeUnavailable, ValueError) as exc:
            logger.debug("Throttle state unavailable: %s", exc)
            return None

    async def _run_command(self, argv: Sequence[str]) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            raise ProbeUnavailable(argv[0], str(exc)) from exc

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise ProbeUnavailable(argv[0], f"timed out after {self.command_timeout:.1f}s") from None

        if process.returncode != 0:
            raise ProbeUnavailable(argv[0], f"exit status {process.returncode}")
        return stdout.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Disk / memory / load

    async def read_disk_space(self) -> Optional[DiskSpace]:
        try:
            usage = await asyncio.to_thread(psutil.disk_usage, self.disk_path)
        except OSError as exc:
            logger.debug("Disk space unavailable for %s: %s", self.disk_path, exc)
            return None
        return DiskSpace(
            available_mb=usage.free / _BYTES_PER_MB,
            used_percent=float(usage.percent),
            total_mb=usage.total / _BYTES_PER_MB,
        )

    async def read_memory(self) -> Optional[float]:
        try:
            return float(psutil.virtual_memory().percent)
        except (OSError, RuntimeError) as exc:
            logger.debug("Memory usage unavailable: %s", exc)
            return None

    async def read_load(self) -> Optional[float]:
        """One-minute load average as a percentage of available cores."""
        try:
            load_1m, _, _ = psutil.getloadavg()
        except (OSError, AttributeError) as exc:
            logger.debug("Load average unavailable: %s", exc)
            return None
        cpu_count = psutil.cpu_count() or 1
        return min(load_1m / cpu_count * 100.0, 100.0)


__all__ = [
    "HealthProbe",
    "SystemHealthProbe",
    "decode_throttle_mask",
    "parse_throttled_output",
]
