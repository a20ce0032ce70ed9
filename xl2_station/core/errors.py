"""
Station error taxonomy.

Device errors are non-fatal: the orchestrator absorbs them on its reconnect
cadence and only explicit callers ever see them raised.
"""

from __future__ import annotations

from typing import Optional


class StationError(Exception):
    """Base class for all station errors."""


class DeviceError(StationError):
    """Base class for device connection errors."""

    def __init__(self, kind: object, message: str, *, port: Optional[str] = None) -> None:
        self.kind = kind
        self.port = port
        label = getattr(kind, "value", kind)
        super().__init__(f"{label}: {message}")
        self.reason = message


class NoCandidateFound(DeviceError):
    """A discovery scan returned zero identified candidates."""

    def __init__(self, kind: object, scanned: int = 0) -> None:
        self.scanned = scanned
        super().__init__(kind, f"no identified device among {scanned} scanned port(s)")


class ConnectFailed(DeviceError):
    """The driver rejected or failed the connection handshake."""


class TeardownFailed(DeviceError):
    """Driver teardown raised or timed out. Local state is already idle."""


class ProbeUnavailable(StationError):
    """A single health signal could not be read."""

    def __init__(self, probe: str, detail: str = "") -> None:
        self.probe = probe
        super().__init__(f"{probe} unavailable{': ' + detail if detail else ''}")


class ObserverError(StationError):
    """Base class for observer subscription errors."""


class ObserverLimitReached(ObserverError):
    """The hub already serves the tier's maximum number of observers."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"observer limit reached ({limit})")


class HubClosed(ObserverError):
    """The hub no longer accepts subscriptions (shutdown in progress)."""


class ConfigError(StationError):
    """A configuration value is missing or malformed."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"{key}: {message}")


__all__ = [
    "ConfigError",
    "ConnectFailed",
    "DeviceError",
    "HubClosed",
    "NoCandidateFound",
    "ObserverError",
    "ObserverLimitReached",
    "ProbeUnavailable",
    "StationError",
    "TeardownFailed",
]
