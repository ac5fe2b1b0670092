"""
Scheduler domain models.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from jukebox.domain.media.models import QueueItem

DEFAULT_BATCH_SIZE = 3


class SchedulerStatus(str, Enum):
    IDLE = "idle"
    PLAYING_ITEM = "playing_item"
    PLAYING_FILLER = "playing_filler"
    STOPPED = "stopped"


@dataclass
class AutoReplenishConfig:
    """Auto-playlist settings plus the songs already produced this session."""

    enabled: bool = False
    description: Optional[str] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    played: set[str] = field(default_factory=set)

    def info(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "description": self.description,
            "batch_size": self.batch_size,
            "played_count": len(self.played),
        }


@dataclass
class PlaybackState:
    """Everything the scheduler knows about what is playing and what is next.

    The pending queue never contains current: items are popped from the
    queue in the same step that assigns them to current.
    """

    queue: deque[QueueItem] = field(default_factory=deque)
    current: Optional[QueueItem] = None
    is_transitioning: bool = False
    is_filler: bool = False
    status: SchedulerStatus = SchedulerStatus.IDLE
    last_played: Optional[str] = None
