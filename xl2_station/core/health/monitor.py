"""
Health Monitor - periodic host vital-sign sampling and classification.

Every tick the monitor reads a HealthSample from its probe, classifies it
against the platform profile, publishes at most one ``system-warning`` per
breached condition and then one ``system-performance`` event. There is no
hysteresis: a condition present on consecutive ticks warns on each of them.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..asyncio_utils import PeriodicTask
from ..events import SYSTEM_PERFORMANCE, SYSTEM_WARNING, EventChannel
from ..logging_utils import get_module_logger
from ..platform_profile import PlatformProfile
from .probe import HealthProbe
from .types import DiskSpace, HealthSample, TemperatureStatus, ThrottleState

logger = get_module_logger("HealthMonitor")

WARNING_TEMPERATURE = "temperature"
WARNING_THROTTLING = "throttling"
WARNING_DISK_SPACE = "disk_space"


def classify_temperature(
    temperature_c: Optional[float],
    warning_c: float,
    critical_c: float,
) -> TemperatureStatus:
    """Classify a temperature against half-open warning/critical bands."""
    if temperature_c is None:
        return TemperatureStatus.UNKNOWN
    if temperature_c >= critical_c:
        return TemperatureStatus.CRITICAL
    if temperature_c >= warning_c:
        return TemperatureStatus.WARNING
    return TemperatureStatus.NORMAL


class HealthMonitor:
    """Samples host health on the profile's cadence and publishes events."""

    def __init__(
        self,
        profile: PlatformProfile,
        probe: HealthProbe,
        *,
        observer_count: Optional[Callable[[], int]] = None,
        channel: Optional[EventChannel] = None,
    ) -> None:
        self.profile = profile
        self.probe = probe
        self.channel = channel or EventChannel("health")
        self._observer_count = observer_count or (lambda: 0)
        self._timer = PeriodicTask(
            "health",
            profile.monitoring_interval,
            self.tick,
            logger=logger,
            run_immediately=True,
        )
        self._started_at = time.monotonic()
        self._last_sample: Optional[HealthSample] = None

    @property
    def is_running(self) -> bool:
        return self._timer.is_running

    def start(self) -> None:
        if self._timer.is_running:
            return
        self._started_at = time.monotonic()
        self._timer.start()
        logger.info(
            "Health monitoring started (tier=%s, interval=%dms)",
            self.profile.tier.value,
            self.profile.monitoring_interval_ms,
        )

    async def stop(self) -> None:
        await self._timer.stop()
        logger.info("Health monitoring stopped")

    def get_last_sample(self) -> Optional[HealthSample]:
        return self._last_sample

    # ------------------------------------------------------------------
    # Tick

    async def tick(self) -> HealthSample:
        """Take one sample, publish its warnings and performance event."""
        sample = await self.collect_sample()
        self._last_sample = sample

        for warning in self.evaluate(sample):
            logger.warning("System warning: %s", warning)
            self.channel.publish(SYSTEM_WARNING, warning)

        self.channel.publish(SYSTEM_PERFORMANCE, self._performance_payload(sample))
        return sample

    async def collect_sample(self) -> HealthSample:
        temperature, throttling, disk, memory, load = await asyncio.gather(
            self._read("temperature", self.probe.read_temperature),
            self._read("throttle", self.probe.read_throttle_state),
            self._read("disk", self.probe.read_disk_space),
            self._read("memory", self.probe.read_memory),
            self._read("load", self.probe.read_load),
        )
        return HealthSample(
            timestamp=time.time(),
            temperature_c=temperature,
            throttling=throttling,
            disk=disk,
            memory_used_percent=memory,
            load_1m_percent=load,
        )

    @staticmethod
    async def _read(label: str, reader: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await reader()
        except Exception as exc:
            logger.debug("Probe %s failed: %s", label, exc)
            return None

    # ------------------------------------------------------------------
    # Classification

    def evaluate(self, sample: HealthSample) -> List[Dict[str, Any]]:
        """Return the warnings for ``sample``, at most one per condition."""
        warnings: List[Dict[str, Any]] = []

        temperature = self._temperature_warning(sample.temperature_c)
        if temperature:
            warnings.append(temperature)

        throttling = self._throttling_warning(sample.throttling)
        if throttling:
            warnings.append(throttling)

        disk = self._disk_warning(sample.disk)
        if disk:
            warnings.append(disk)

        return warnings

    def classify(self, sample: HealthSample) -> TemperatureStatus:
        return classify_temperature(
            sample.temperature_c,
            self.profile.max_temperature_warning_c,
            self.profile.max_temperature_critical_c,
        )

    def _temperature_warning(self, temperature_c: Optional[float]) -> Optional[Dict[str, Any]]:
        status = classify_temperature(
            temperature_c,
            self.profile.max_temperature_warning_c,
            self.profile.max_temperature_critical_c,
        )
        if status not in (TemperatureStatus.WARNING, TemperatureStatus.CRITICAL):
            return None
        threshold = (
            self.profile.max_temperature_critical_c
            if status is TemperatureStatus.CRITICAL
            else self.profile.max_temperature_warning_c
        )
        return {
            "type": WARNING_TEMPERATURE,
            "value": temperature_c,
            "threshold": threshold,
            "status": status.value,
            "tier": self.profile.tier.value,
        }

    def _throttling_warning(self, throttling: Optional[ThrottleState]) -> Optional[Dict[str, Any]]:
        if throttling is None or not throttling.active or not throttling.reasons:
            return None
        reasons = [reason.value for reason in throttling.ordered_reasons()]
        return {
            "type": WARNING_THROTTLING,
            "reasons": reasons,
            "message": f"CPU throttling active: {', '.join(reasons)}",
            "tier": self.profile.tier.value,
        }

    def _disk_warning(self, disk: Optional[DiskSpace]) -> Optional[Dict[str, Any]]:
        if disk is None or disk.available_mb >= self.profile.min_disk_space_mb:
            return None
        return {
            "type": WARNING_DISK_SPACE,
            "available": round(disk.available_mb, 1),
            "threshold": self.profile.min_disk_space_mb,
            "usagePercent": round(disk.used_percent, 1),
        }

    def _performance_payload(self, sample: HealthSample) -> Dict[str, Any]:
        payload = sample.to_payload()
        payload.update(
            {
                "temperatureStatus": self.classify(sample).value,
                "tier": self.profile.tier.value,
                "connectedObservers": self._observer_count(),
                "uptime": round(time.monotonic() - self._started_at, 1),
            }
        )
        return payload


__all__ = [
    "HealthMonitor",
    "WARNING_DISK_SPACE",
    "WARNING_TEMPERATURE",
    "WARNING_THROTTLING",
    "classify_temperature",
]
