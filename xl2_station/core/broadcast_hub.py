"""
Broadcast Hub - non-blocking fan-out of station events to observers.

Each observer gets its own bounded queue and sender task. ``emit`` only
enqueues, so a slow or stalled observer delays nobody but itself. When an
observer's queue is full its oldest pending sample or telemetry event is
dropped; device state changes and system warnings are only evicted when
nothing else is queued.

Producers are attached as EventChannels; one pump task per channel relays
its events in order, which keeps per-producer ordering for every observer.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Set, Union, runtime_checkable

from .asyncio_utils import cancel_and_wait, create_logged_task
from .errors import HubClosed, ObserverError, ObserverLimitReached
from .events import (
    DEVICE_CONNECTED,
    DEVICE_DISCONNECTED,
    OBSERVER_COUNT,
    SYSTEM_WARNING,
    EventChannel,
)
from .logging_utils import get_module_logger

logger = get_module_logger("BroadcastHub")

# Evicted last when an observer falls behind
PRIORITY_EVENTS = frozenset({DEVICE_CONNECTED, DEVICE_DISCONNECTED, SYSTEM_WARNING})


@runtime_checkable
class Observer(Protocol):
    async def send(self, event_name: str, payload: Dict[str, Any]) -> None:
        ...


@dataclass(frozen=True)
class ObserverHandle:
    """Returned by ``subscribe``; pass back to ``unsubscribe``."""
    observer_id: str


class _Subscription:
    __slots__ = ("observer_id", "observer", "queue", "task", "delivered", "dropped")

    def __init__(self, observer_id: str, observer: Observer, queue_size: int) -> None:
        self.observer_id = observer_id
        self.observer = observer
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.task: Optional[asyncio.Task[None]] = None
        self.delivered = 0
        self.dropped = 0

    def evict_one(self) -> str:
        """Drop the oldest non-priority event, or the oldest event if all are priority."""
        pending = []
        while not self.queue.empty():
            pending.append(self.queue.get_nowait())
        victim = next(
            (index for index, (name, _) in enumerate(pending) if name not in PRIORITY_EVENTS), 0
        )
        event_name, _ = pending.pop(victim)
        for item in pending:
            self.queue.put_nowait(item)
        self.dropped += 1
        return event_name


class BroadcastHub:
    """Fan-out of station events to every subscribed observer."""

    def __init__(self, *, max_clients: int, queue_size: int = 256) -> None:
        if max_clients < 1:
            raise ValueError("max_clients must be at least 1")
        self.max_clients = max_clients
        self.queue_size = queue_size
        self._subscriptions: Dict[str, _Subscription] = {}
        self._pumps: Set[asyncio.Task[Any]] = set()
        self._closed = False
        self.emitted = 0

    @property
    def observer_count(self) -> int:
        return len(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Membership

    def subscribe(self, observer: Observer, observer_id: Optional[str] = None) -> ObserverHandle:
        """Add an observer and broadcast the new observer count.

        Raises:
            HubClosed: The hub is shutting down
            ObserverLimitReached: ``max_clients`` observers are already subscribed
        """
        if self._closed:
            raise HubClosed("hub is closed")
        if len(self._subscriptions) >= self.max_clients:
            raise ObserverLimitReached(self.max_clients)

        observer_id = observer_id or uuid.uuid4().hex
        if observer_id in self._subscriptions:
            raise ObserverError(f"observer {observer_id} already subscribed")

        subscription = _Subscription(observer_id, observer, self.queue_size)
        self._subscriptions[observer_id] = subscription
        subscription.task = create_logged_task(
            self._sender(subscription), logger=logger, context=f"observer:{observer_id}"
        )
        logger.info("Observer %s joined (%d connected)", observer_id, self.observer_count)
        self._broadcast_count()
        return ObserverHandle(observer_id)

    def unsubscribe(self, handle: Union[ObserverHandle, str]) -> bool:
        """Remove an observer. Returns False if it was not subscribed."""
        observer_id = handle.observer_id if isinstance(handle, ObserverHandle) else handle
        subscription = self._subscriptions.pop(observer_id, None)
        if subscription is None:
            return False
        if subscription.task is not None and subscription.task is not asyncio.current_task():
            subscription.task.cancel()
        logger.info("Observer %s left (%d connected)", observer_id, self.observer_count)
        self._broadcast_count()
        return True

    def _broadcast_count(self) -> None:
        self.emit(OBSERVER_COUNT, {"count": self.observer_count})

    # ------------------------------------------------------------------
    # Fan-out

    def emit(self, event_name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Queue an event for every observer. Never awaits."""
        payload = payload if payload is not None else {}
        self.emitted += 1
        for subscription in list(self._subscriptions.values()):
            queue = subscription.queue
            if queue.full():
                dropped_name = subscription.evict_one()
                logger.warning(
                    "Observer %s is falling behind, dropped %s event (%d dropped)",
                    subscription.observer_id,
                    dropped_name,
                    subscription.dropped,
                )
            queue.put_nowait((event_name, payload))

    async def _sender(self, subscription: _Subscription) -> None:
        while True:
            event_name, payload = await subscription.queue.get()
            try:
                await subscription.observer.send(event_name, payload)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.info("Dropping observer %s after send failure: %s", subscription.observer_id, exc)
                self.unsubscribe(subscription.observer_id)
                return
            subscription.delivered += 1

    def attach(self, channel: EventChannel) -> asyncio.Task[Any]:
        """Relay every event published on ``channel`` until it closes."""
        if self._closed:
            raise HubClosed("hub is closed")
        return create_logged_task(
            self._pump(channel), logger=logger, context=f"pump:{channel.name}", pending=self._pumps
        )

    async def _pump(self, channel: EventChannel) -> None:
        async for event in channel:
            self.emit(event.name, event.payload)
        logger.debug("Channel %s closed", channel.name)

    # ------------------------------------------------------------------

    def get_stats(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": sub.observer_id,
                "pending": sub.queue.qsize(),
                "delivered": sub.delivered,
                "dropped": sub.dropped,
            }
            for sub in self._subscriptions.values()
        ]

    async def close(self) -> None:
        """Refuse new observers and stop all pumps and sender tasks."""
        if self._closed:
            return
        self._closed = True

        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        tasks = [sub.task for sub in subscriptions if sub.task is not None]
        tasks.extend(self._pumps)
        for task in tasks:
            await cancel_and_wait(task)
        logger.info("Broadcast hub closed (%d observers released)", len(subscriptions))


__all__ = ["BroadcastHub", "Observer", "ObserverHandle", "PRIORITY_EVENTS"]
