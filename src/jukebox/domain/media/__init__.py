"""
Media domain module.

Request models, local/remote resolution with caching, and duration probing.
"""

from .models import MediaSource, QueueItem, item_from_argument, is_url
from .probe import probe_duration
from .resolver import MediaResolver

__all__ = [
    "MediaSource",
    "QueueItem",
    "item_from_argument",
    "is_url",
    "probe_duration",
    "MediaResolver",
]
