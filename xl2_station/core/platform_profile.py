"""
Platform profile for the XL2 station host.

Detects the host hardware tier once at startup from the device-tree model
string and resolves the monitoring thresholds for that tier. The result is
cached for the lifetime of the process.
"""

from __future__ import annotations

import dataclasses
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .errors import ConfigError
from .logging_utils import get_module_logger

logger = get_module_logger("PlatformProfile")

MODEL_PATHS: Tuple[str, ...] = (
    "/proc/device-tree/model",
    "/sys/firmware/devicetree/base/model",
)


class PlatformTier(Enum):
    """Hardware capability classes."""
    PI5 = "pi5"
    PI4 = "pi4"
    PI3 = "pi3"
    PI_ZERO = "piZero"
    UNKNOWN = "unknown"


# Ordered: first matching prefix wins
TIER_SIGNATURES: Tuple[Tuple[str, PlatformTier], ...] = (
    ("Raspberry Pi 5", PlatformTier.PI5),
    ("Raspberry Pi Compute Module 5", PlatformTier.PI5),
    ("Raspberry Pi 4", PlatformTier.PI4),
    ("Raspberry Pi Compute Module 4", PlatformTier.PI4),
    ("Raspberry Pi 3", PlatformTier.PI3),
    ("Raspberry Pi Compute Module 3", PlatformTier.PI3),
    ("Raspberry Pi Zero 2", PlatformTier.PI_ZERO),
    ("Raspberry Pi Zero", PlatformTier.PI_ZERO),
)


@dataclass(frozen=True)
class PlatformProfile:
    """Immutable thresholds and limits for the detected hardware tier.

    Attributes:
        tier: Detected hardware tier
        model: Raw model string, None if it could not be read
        max_temperature_warning_c: Temperature at which a warning is raised
        max_temperature_critical_c: Temperature at which the status is critical
        min_disk_space_mb: Free space below which a disk warning is raised
        max_clients: Maximum simultaneously connected observers
        monitoring_interval_ms: Health monitoring cadence
    """

    tier: PlatformTier
    model: Optional[str]
    max_temperature_warning_c: float
    max_temperature_critical_c: float
    min_disk_space_mb: int
    max_clients: int
    monitoring_interval_ms: int

    @property
    def monitoring_interval(self) -> float:
        """Monitoring cadence in seconds."""
        return self.monitoring_interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.value,
            "model": self.model,
            "maxTemperatureWarningC": self.max_temperature_warning_c,
            "maxTemperatureCriticalC": self.max_temperature_critical_c,
            "minDiskSpaceMB": self.min_disk_space_mb,
            "maxClients": self.max_clients,
            "monitoringIntervalMs": self.monitoring_interval_ms,
        }

    def __str__(self) -> str:
        return f"{self.tier.value} ({self.model or 'unidentified host'})"


# tier -> (warning C, critical C, min disk MB, max clients, interval ms)
_TIER_LIMITS: Dict[PlatformTier, Tuple[float, float, int, int, int]] = {
    PlatformTier.PI5: (75.0, 85.0, 1024, 15, 10000),
    PlatformTier.PI4: (70.0, 80.0, 1024, 10, 10000),
    PlatformTier.PI3: (65.0, 75.0, 1024, 5, 15000),
    PlatformTier.PI_ZERO: (60.0, 70.0, 512, 2, 30000),
    # Lowest limit in every column
    PlatformTier.UNKNOWN: (60.0, 70.0, 512, 2, 30000),
}


def profile_for_tier(tier: PlatformTier, model: Optional[str] = None) -> PlatformProfile:
    warning, critical, min_disk, max_clients, interval = _TIER_LIMITS[tier]
    return PlatformProfile(
        tier=tier,
        model=model,
        max_temperature_warning_c=warning,
        max_temperature_critical_c=critical,
        min_disk_space_mb=min_disk,
        max_clients=max_clients,
        monitoring_interval_ms=interval,
    )


def classify_model(model: Optional[str]) -> PlatformTier:
    """Map a device-tree model string to a tier (first matching prefix wins)."""
    if not model:
        return PlatformTier.UNKNOWN
    for prefix, tier in TIER_SIGNATURES:
        if model.startswith(prefix):
            return tier
    return PlatformTier.UNKNOWN


def read_model_signature(paths: Sequence[str] = MODEL_PATHS) -> Optional[str]:
    """Read the hardware model string, or None when it is unavailable."""
    if not sys.platform.startswith("linux"):
        logger.debug("Model signature unavailable on %s", sys.platform)
        return None

    for path in paths:
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                model = f.read().strip().rstrip("\x00").strip()
        except OSError as exc:
            logger.debug("Could not read %s: %s", path, exc)
            continue
        if model:
            return model

    return None


def resolve_platform_profile(
    model_paths: Sequence[str] = MODEL_PATHS,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PlatformProfile:
    """Detect the host tier and build its profile.

    This performs the actual detection. Use get_platform_profile() to get the
    cached instance.

    Args:
        model_paths: Candidate files holding the device-tree model string
        overrides: Optional PlatformProfile field overrides from configuration

    Returns:
        The resolved profile. Unreadable or unrecognised hardware yields the
        UNKNOWN tier with the most conservative limits.

    Raises:
        ConfigError: The overrides leave the warning temperature at or
            above the critical temperature
    """
    model = read_model_signature(model_paths)
    tier = classify_model(model)
    if model is None:
        logger.debug("No hardware signature found, falling back to %s tier", tier.value)
    elif tier is PlatformTier.UNKNOWN:
        logger.debug("Unrecognised hardware signature %r, using conservative limits", model)

    profile = profile_for_tier(tier, model)
    if overrides:
        profile = dataclasses.replace(profile, **dict(overrides))
        if profile.max_temperature_warning_c >= profile.max_temperature_critical_c:
            key = (
                "temperature_warning_c"
                if "max_temperature_warning_c" in overrides
                else "temperature_critical_c"
            )
            raise ConfigError(
                key,
                f"warning temperature {profile.max_temperature_warning_c} must be below "
                f"critical temperature {profile.max_temperature_critical_c} for {profile.tier.value}",
            )

    logger.info("Platform profile resolved: %s", profile)
    return profile


# Process-wide cache
_platform_profile: Optional[PlatformProfile] = None


def get_platform_profile(overrides: Optional[Mapping[str, Any]] = None) -> PlatformProfile:
    """Return the cached profile, resolving it on first use."""
    global _platform_profile
    if _platform_profile is None:
        _platform_profile = resolve_platform_profile(overrides=overrides)
    return _platform_profile


def reset_platform_profile() -> None:
    """Reset the cached profile (for testing only)."""
    global _platform_profile
    _platform_profile = None


__all__ = [
    "MODEL_PATHS",
    "PlatformProfile",
    "PlatformTier",
    "TIER_SIGNATURES",
    "classify_model",
    "get_platform_profile",
    "profile_for_tier",
    "read_model_signature",
    "reset_platform_profile",
    "resolve_platform_profile",
]
