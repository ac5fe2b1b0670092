"""
Scheduler domain module.

The request queue state machine and its persisted snapshot.
"""

from .models import AutoReplenishConfig, PlaybackState, SchedulerStatus
from .persistence import Snapshot, StateStore
from .scheduler import AUTO_REQUESTER, PlaybackScheduler

__all__ = [
    "PlaybackScheduler",
    "PlaybackState",
    "SchedulerStatus",
    "AutoReplenishConfig",
    "StateStore",
    "Snapshot",
    "AUTO_REQUESTER",
]
