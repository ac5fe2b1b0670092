"""EventBus - multi-subscriber notification channel for lifecycle and progress events.

Publishers (scheduler, broadcast process, resolver) never know who listens.
Subscribers are either plain callbacks, invoked synchronously in publish
order, or async consumers reading from a bounded per-subscriber queue.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Iterable, Optional

from loguru import logger

from .models import Event, EventType

EventCallback = Callable[[Event], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    callback: EventCallback
    types: Optional[frozenset[EventType]] = None
    active: bool = field(default=True)

    def accepts(self, event: Event) -> bool:
        return self.types is None or event.type in self.types


class EventBus:
    """Process-wide event channel, constructed once and passed to components.

    Keeps a short history so late subscribers (dashboards reconnecting) can
    catch up with recent().
    """

    def __init__(self, history_size: int = 100, queue_size: int = 256):
        self._subscriptions: list[Subscription] = []
        self._history: deque[Event] = deque(maxlen=history_size)
        self._queue_size = queue_size
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def subscribe(
        self, callback: EventCallback, types: Optional[Iterable[EventType]] = None
    ) -> Subscription:
        """Register a callback for all events, or only the given types."""
        subscription = Subscription(
            callback=callback, types=frozenset(types) if types is not None else None
        )
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: Event) -> None:
        """Deliver an event to every matching subscriber, in subscription order.

        A failing subscriber is logged and skipped; it never affects the
        publisher or the remaining subscribers.
        """
        self._history.append(event)
        for subscription in list(self._subscriptions):
            if not subscription.active or not subscription.accepts(event):
                continue
            try:
                subscription.callback(event)
            except Exception:
                logger.exception(f"Event subscriber failed on {event.type.value} event")

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop used by publish_threadsafe()."""
        self._loop = loop

    def publish_threadsafe(self, event: Event) -> None:
        """Publish from a worker thread (yt-dlp hooks, to_thread callers)."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"Dropping {event.type.value} event, no loop bound: {event.message}")
            return
        loop.call_soon_threadsafe(self.publish, event)

    def recent(self, limit: Optional[int] = None) -> list[Event]:
        """Most recent events, oldest first."""
        events = list(self._history)
        if limit is not None:
            events = events[-limit:]
        return events

    async def events(
        self, types: Optional[Iterable[EventType]] = None
    ) -> AsyncIterator[Event]:
        """Async iterator over future events.

        Slow consumers lose the oldest buffered events rather than blocking
        publishers. Unsubscribes when the consumer stops iterating.
        """
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._queue_size)

        def enqueue(event: Event) -> None:
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

        subscription = self.subscribe(enqueue, types)
        try:
            while True:
                yield await queue.get()
        finally:
            self.unsubscribe(subscription)
