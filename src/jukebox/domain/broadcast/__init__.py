"""
Broadcast domain module.

Supervises the external encoder process that pushes the outbound stream,
its rendering presets, progress parsing and persisted settings.
"""

from .command import build_stream_args, is_audio_file
from .presets import DEFAULT_QUALITY, QUALITY_PRESETS, QualityPreset, get_preset
from .process import BroadcastProcess, ExitOutcome, StreamHandle
from .progress import StreamProgress, parse_progress_line
from .settings import SettingsStore, StreamSettings

__all__ = [
    "BroadcastProcess",
    "StreamHandle",
    "ExitOutcome",
    "QualityPreset",
    "QUALITY_PRESETS",
    "DEFAULT_QUALITY",
    "get_preset",
    "StreamProgress",
    "parse_progress_line",
    "StreamSettings",
    "SettingsStore",
    "build_stream_args",
    "is_audio_file",
]
