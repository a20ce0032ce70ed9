"""
Station Events - Typed event messages and per-producer channels.

Every producer (each device connection, the health monitor) owns one
EventChannel. The BroadcastHub attaches to channels instead of having
callbacks assigned onto producers, so the producer side only ever does a
non-blocking publish.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

DEVICE_CONNECTED = "device-connected"
DEVICE_DISCONNECTED = "device-disconnected"
MEASUREMENT_SAMPLE = "measurement-sample"
POSITION_SAMPLE = "position-sample"
SYSTEM_WARNING = "system-warning"
SYSTEM_PERFORMANCE = "system-performance"
OBSERVER_COUNT = "observer-count"


@dataclass(frozen=True)
class StationEvent:
    """A single outward event.

    Attributes:
        name: Wire event name (e.g. ``device-connected``)
        payload: JSON-serialisable payload
        source: Name of the producing channel
        timestamp: Wall-clock time the event was published
    """
    name: str
    payload: Dict[str, Any] = field(default_factory=dict)
    source: str = ""
    timestamp: float = field(default_factory=time.time)


_CLOSED = object()


class EventChannel:
    """Unbounded FIFO of StationEvents from a single producer.

    ``publish`` never awaits, so device handlers and ticks can publish
    from any point without yielding to the scheduler.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, name: str, payload: Optional[Dict[str, Any]] = None) -> StationEvent:
        event = StationEvent(name=name, payload=dict(payload or {}), source=self.name)
        if not self._closed:
            self._queue.put_nowait(event)
            self.published += 1
        return event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[StationEvent]:
        """Wait for the next event. Returns None once the channel is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def drain(self) -> List[StationEvent]:
        """Remove and return every queued event without waiting."""
        events: List[StationEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is _CLOSED:
                # Keep the close marker for any consumer still iterating
                self._queue.put_nowait(_CLOSED)
                break
            events.append(item)
        return events

    async def __aiter__(self) -> AsyncIterator[StationEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


__all__ = [
    "DEVICE_CONNECTED",
    "DEVICE_DISCONNECTED",
    "EventChannel",
    "MEASUREMENT_SAMPLE",
    "OBSERVER_COUNT",
    "POSITION_SAMPLE",
    "StationEvent",
    "SYSTEM_PERFORMANCE",
    "SYSTEM_WARNING",
]
