"""
Event models published on the EventBus.

Every event carries a type, a human-readable message and a timestamp, plus
fields specific to its type.
"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class EventType(str, Enum):
    DOWNLOAD = "download"
    STREAM = "stream"
    QUEUE = "queue"
    SYSTEM = "system"
    ERROR = "error"


class QueueAction(str, Enum):
    ENQUEUED = "enqueued"
    PLAYING = "playing"
    SKIPPED = "skipped"
    CLEARED = "cleared"
    REMOVED = "removed"
    FILLER = "filler"
    AUTO_GENERATING = "auto-generating"


class TransitionReason(str, Enum):
    """Why the scheduler moved on to the next item."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    CRASHED = "crashed"
    ENQUEUED = "enqueued"
    RESUMED = "resumed"
    FAILED = "failed"


@dataclass(kw_only=True)
class Event:
    type: EventType
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict suitable for JSON (dashboards, websockets)."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass(kw_only=True)
class DownloadEvent(Event):
    type: EventType = EventType.DOWNLOAD
    title: str = ""
    percent: int = 0
    status: str = "downloading"  # 'downloading' | 'complete' | 'error'
    speed: Optional[str] = None


@dataclass(kw_only=True)
class StreamEvent(Event):
    type: EventType = EventType.STREAM
    action: str = "progress"  # 'started' | 'progress' | 'stopped' | 'exited'
    title: Optional[str] = None
    elapsed: Optional[str] = None
    bitrate: Optional[str] = None
    speed: Optional[str] = None
    frame: Optional[int] = None


@dataclass(kw_only=True)
class QueueEvent(Event):
    type: EventType = EventType.QUEUE
    action: QueueAction = QueueAction.ENQUEUED
    item: Optional[dict[str, Any]] = None
    reason: Optional[TransitionReason] = None
    queue_length: int = 0


@dataclass(kw_only=True)
class SystemEvent(Event):
    type: EventType = EventType.SYSTEM


@dataclass(kw_only=True)
class ErrorEvent(Event):
    type: EventType = EventType.ERROR
    source: str = "system"  # 'resolver' | 'broadcast' | 'scheduler' | 'ai'
    item: Optional[dict[str, Any]] = None
