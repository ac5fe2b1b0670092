"""
Queue snapshot persistence.

The scheduler writes a JSON snapshot after every mutation so a restart can
pick up where the previous run left off. Writes go through a temp file and
os.replace, so a crash mid-write leaves the previous snapshot intact.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from jukebox.domain.media.models import QueueItem
from jukebox.utils.files import atomic_write_json, safe_json_read

from .models import AutoReplenishConfig, PlaybackState

SNAPSHOT_VERSION = 1


@dataclass
class Snapshot:
    pending_queue: list[QueueItem] = field(default_factory=list)
    current: Optional[QueueItem] = None
    last_played: Optional[str] = None
    auto_enabled: bool = False
    auto_description: Optional[str] = None
    auto_batch_size: Optional[int] = None
    saved_at: Optional[float] = None

    def is_empty(self) -> bool:
        return not self.pending_queue and self.current is None


def _item_or_none(data: Any) -> Optional[QueueItem]:
    if not isinstance(data, dict):
        return None
    try:
        return QueueItem.from_dict(data)
    except (KeyError, TypeError) as e:
        logger.warning(f"Dropping malformed queue item from snapshot: {e}")
        return None


class StateStore:
    """Reads and writes the scheduler snapshot file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, state: PlaybackState, auto: AutoReplenishConfig) -> bool:
        data = {
            "version": SNAPSHOT_VERSION,
            "pending_queue": [item.to_dict() for item in state.queue],
            "current": state.current.to_dict() if state.current else None,
            "last_played": state.last_played,
            "auto_replenish": {
                "enabled": auto.enabled,
                "description": auto.description,
                "batch_size": auto.batch_size,
            },
            "saved_at": time.time(),
        }
        saved = atomic_write_json(self.path, data)
        if not saved:
            logger.warning(f"Could not persist queue snapshot to {self.path}")
        return saved

    def load(self) -> Optional[Snapshot]:
        """Load the snapshot, or None when missing, unreadable or from another version."""
        data = safe_json_read(self.path, default=None)
        if not isinstance(data, dict):
            return None

        if data.get("version") != SNAPSHOT_VERSION:
            logger.warning(f"Ignoring queue snapshot with version {data.get('version')!r}")
            return None

        pending = []
        for entry in data.get("pending_queue") or []:
            item = _item_or_none(entry)
            if item is not None:
                pending.append(item)

        auto = data.get("auto_replenish") or {}
        batch_size = auto.get("batch_size")

        return Snapshot(
            pending_queue=pending,
            current=_item_or_none(data.get("current")),
            last_played=data.get("last_played"),
            auto_enabled=bool(auto.get("enabled")),
            auto_description=auto.get("description"),
            auto_batch_size=batch_size if isinstance(batch_size, int) and batch_size > 0 else None,
            saved_at=data.get("saved_at"),
        )
