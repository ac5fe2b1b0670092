"""
Event domain module.

Typed lifecycle/progress events and the bus that carries them.
"""

from .bus import EventBus, Subscription
from .models import (
    DownloadEvent,
    ErrorEvent,
    Event,
    EventType,
    QueueAction,
    QueueEvent,
    StreamEvent,
    SystemEvent,
    TransitionReason,
)

__all__ = [
    "EventBus",
    "Subscription",
    "Event",
    "EventType",
    "DownloadEvent",
    "StreamEvent",
    "QueueEvent",
    "QueueAction",
    "SystemEvent",
    "ErrorEvent",
    "TransitionReason",
]
