"""Unit tests for BroadcastHub fan-out."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from tests.infrastructure.mocks.driver_mocks import (
    FailingObserver,
    RecordingObserver,
    StalledObserver,
)
from xl2_station.core.broadcast_hub import BroadcastHub, ObserverHandle
from xl2_station.core.errors import HubClosed, ObserverLimitReached
from xl2_station.core.events import (
    DEVICE_CONNECTED,
    DEVICE_DISCONNECTED,
    MEASUREMENT_SAMPLE,
    OBSERVER_COUNT,
    SYSTEM_WARNING,
    EventChannel,
)


async def _settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest_asyncio.fixture
async def hub():
    hub = BroadcastHub(max_clients=3, queue_size=8)
    yield hub
    await hub.close()


class TestMembership:

    @pytest.mark.asyncio
    async def test_joining_observer_receives_count(self, hub):
        observer = RecordingObserver()

        handle = hub.subscribe(observer, observer_id="alpha")
        await _settle()

        assert handle == ObserverHandle("alpha")
        assert hub.observer_count == 1
        assert observer.events == [(OBSERVER_COUNT, {"count": 1})]

    @pytest.mark.asyncio
    async def test_count_broadcast_to_everyone(self, hub):
        first = RecordingObserver()
        second = RecordingObserver()

        hub.subscribe(first)
        handle = hub.subscribe(second)
        hub.unsubscribe(handle)
        await _settle()

        counts = [payload["count"] for name, payload in first.events if name == OBSERVER_COUNT]
        assert counts == [1, 2, 1]
        assert hub.observer_count == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_returns_false(self, hub):
        assert hub.unsubscribe("nobody") is False

    @pytest.mark.asyncio
    async def test_observer_limit(self, hub):
        for _ in range(3):
            hub.subscribe(RecordingObserver())

        with pytest.raises(ObserverLimitReached) as exc_info:
            hub.subscribe(RecordingObserver())

        assert exc_info.value.limit == 3
        assert hub.observer_count == 3

    @pytest.mark.asyncio
    async def test_failing_observer_is_dropped(self, hub):
        survivor = RecordingObserver()
        hub.subscribe(survivor)
        hub.subscribe(FailingObserver())
        await _settle()

        assert hub.observer_count == 1
        counts = [payload["count"] for name, payload in survivor.events if name == OBSERVER_COUNT]
        assert counts[-1] == 1


class TestFanOut:

    @pytest.mark.asyncio
    async def test_emit_reaches_all_observers(self, hub):
        first = RecordingObserver()
        second = RecordingObserver()
        hub.subscribe(first)
        hub.subscribe(second)

        hub.emit("device-connected", {"kind": "measurement", "port": "/dev/xl2"})
        await _settle()

        assert "device-connected" in first.names
        assert "device-connected" in second.names

    @pytest.mark.asyncio
    async def test_stalled_observer_does_not_block_others(self, hub):
        stalled = StalledObserver()
        healthy = RecordingObserver()
        hub.subscribe(stalled)
        hub.subscribe(healthy)
        await _settle()

        for index in range(5):
            hub.emit("measurement-sample", {"index": index})
        await _settle()

        samples = [p["index"] for name, p in healthy.events if name == "measurement-sample"]
        assert samples == [0, 1, 2, 3, 4]
        assert stalled.attempts == 1

    @pytest.mark.asyncio
    async def test_emit_never_awaits(self, hub):
        hub.subscribe(StalledObserver())

        # emit is a plain function; it returns before any observer runs
        assert hub.emit("system-performance", {}) is None

    @pytest.mark.asyncio
    async def test_overflow_drops_oldest(self):
        hub = BroadcastHub(max_clients=2, queue_size=2)
        stalled = StalledObserver()
        hub.subscribe(stalled)
        await _settle()

        hub.emit("a", {})
        hub.emit("b", {})
        hub.emit("c", {})

        (stats,) = hub.get_stats()
        assert stats["dropped"] == 1
        assert stats["pending"] == 2
        await hub.close()

    @pytest.mark.asyncio
    async def test_overflow_keeps_device_and_warning_events(self):
        hub = BroadcastHub(max_clients=2, queue_size=3)
        stalled = StalledObserver()
        hub.subscribe(stalled)
        await _settle()

        hub.emit(DEVICE_CONNECTED, {"kind": "measurement"})
        hub.emit(SYSTEM_WARNING, {"kind": "temperature"})
        for index in range(4):
            hub.emit(MEASUREMENT_SAMPLE, {"seq": index})

        (stats,) = hub.get_stats()
        assert stats["dropped"] == 3

        stalled.release.set()
        await _settle(10)
        assert [name for name, _ in stalled.events] == [
            OBSERVER_COUNT,
            DEVICE_CONNECTED,
            SYSTEM_WARNING,
            MEASUREMENT_SAMPLE,
        ]
        assert stalled.events[-1][1] == {"seq": 3}
        await hub.close()

    @pytest.mark.asyncio
    async def test_overflow_of_priority_events_drops_oldest(self):
        hub = BroadcastHub(max_clients=2, queue_size=2)
        stalled = StalledObserver()
        hub.subscribe(stalled)
        await _settle()

        hub.emit(DEVICE_CONNECTED, {"seq": 0})
        hub.emit(DEVICE_DISCONNECTED, {"seq": 1})
        hub.emit(DEVICE_CONNECTED, {"seq": 2})

        stalled.release.set()
        await _settle(10)
        assert [payload for _, payload in stalled.events[1:]] == [{"seq": 1}, {"seq": 2}]
        await hub.close()

    @pytest.mark.asyncio
    async def test_channel_order_preserved(self, hub):
        observer = RecordingObserver()
        hub.subscribe(observer)
        channel = EventChannel("measurement")
        hub.attach(channel)

        for index in range(10):
            channel.publish("measurement-sample", {"index": index})
        await asyncio.sleep(0.01)

        received = [p["index"] for name, p in observer.events if name == "measurement-sample"]
        assert received == list(range(10))


class TestClose:

    @pytest.mark.asyncio
    async def test_close_refuses_new_observers(self):
        hub = BroadcastHub(max_clients=2)
        hub.subscribe(StalledObserver())

        await hub.close()

        assert hub.closed
        assert hub.observer_count == 0
        with pytest.raises(HubClosed):
            hub.subscribe(RecordingObserver())
        with pytest.raises(HubClosed):
            hub.attach(EventChannel("late"))

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        hub = BroadcastHub(max_clients=1)
        await hub.close()
        await hub.close()

        assert hub.closed
