"""Tests for the event bus."""

import asyncio
from unittest.mock import MagicMock

import pytest

from jukebox.domain.events import (
    ErrorEvent,
    EventBus,
    EventType,
    QueueAction,
    QueueEvent,
    StreamEvent,
    SystemEvent,
    TransitionReason,
)


class TestSubscribe:
    """Tests for callback subscriptions."""

    def test_delivers_in_publish_order(self, bus: EventBus) -> None:
        received = []
        bus.subscribe(received.append)

        first = SystemEvent(message="one")
        second = SystemEvent(message="two")
        bus.publish(first)
        bus.publish(second)

        assert received == [first, second]

    def test_type_filter(self, bus: EventBus) -> None:
        callback = MagicMock()
        bus.subscribe(callback, types=[EventType.ERROR])

        bus.publish(SystemEvent(message="ignored"))
        bus.publish(ErrorEvent(message="boom", source="broadcast"))

        callback.assert_called_once()
        assert callback.call_args[0][0].message == "boom"

    def test_unsubscribe(self, bus: EventBus) -> None:
        callback = MagicMock()
        subscription = bus.subscribe(callback)

        bus.unsubscribe(subscription)
        bus.publish(SystemEvent(message="after"))

        callback.assert_not_called()
        assert subscription.active is False

    def test_failing_subscriber_is_isolated(self, bus: EventBus) -> None:
        """A raising callback never reaches the publisher or other subscribers."""
        healthy = MagicMock()
        bus.subscribe(MagicMock(side_effect=RuntimeError("bad subscriber")))
        bus.subscribe(healthy)

        bus.publish(SystemEvent(message="still delivered"))

        healthy.assert_called_once()

    def test_recent_history(self) -> None:
        bus = EventBus(history_size=2)
        for n in range(3):
            bus.publish(SystemEvent(message=str(n)))

        assert [e.message for e in bus.recent()] == ["1", "2"]
        assert [e.message for e in bus.recent(limit=1)] == ["2"]


class TestAsyncDelivery:
    """Tests for the async iterator and thread-safe publishing."""

    @pytest.mark.anyio
    async def test_events_iterator(self, bus: EventBus) -> None:
        stream = bus.events(types=[EventType.STREAM])
        waiter = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)

        bus.publish(SystemEvent(message="skipped"))
        bus.publish(StreamEvent(message="started", action="started"))

        event = await asyncio.wait_for(waiter, timeout=1)
        assert event.action == "started"
        await stream.aclose()

    @pytest.mark.anyio
    async def test_publish_threadsafe(self, bus: EventBus) -> None:
        received = []
        bus.subscribe(received.append)
        bus.bind_loop(asyncio.get_running_loop())

        await asyncio.to_thread(bus.publish_threadsafe, SystemEvent(message="from thread"))
        await asyncio.sleep(0.01)

        assert [e.message for e in received] == ["from thread"]

    def test_publish_threadsafe_without_loop_drops(self, bus: EventBus) -> None:
        bus.publish_threadsafe(SystemEvent(message="dropped"))

        assert bus.recent() == []


class TestEventModels:
    """Tests for event serialization."""

    def test_queue_event_to_dict(self) -> None:
        event = QueueEvent(
            message="Now playing: Song A",
            action=QueueAction.PLAYING,
            item={"key": "a"},
            reason=TransitionReason.SKIPPED,
            queue_length=2,
        )

        data = event.to_dict()

        assert data["type"] == "queue"
        assert data["action"] == "playing"
        assert data["reason"] == "skipped"
        assert data["queue_length"] == 2
        assert isinstance(data["timestamp"], float)
