"""Rendering profiles for the broadcast encoder."""

from dataclasses import dataclass

from jukebox.domain.exceptions import ConfigError


@dataclass(frozen=True)
class QualityPreset:
    """Resolution/bitrate/encoder-speed profile.

    The 'source' preset streams the video track untouched (no re-encode).
    """

    name: str
    resolution: str
    width: int
    height: int
    video_bitrate: str
    audio_bitrate: str
    preset: str  # x264 speed preset, or "copy"

    @property
    def is_passthrough(self) -> bool:
        return self.preset == "copy"

    @property
    def video_bitrate_kbps(self) -> int:
        return int(self.video_bitrate.rstrip("k") or 0)


QUALITY_PRESETS: dict[str, QualityPreset] = {
    "480p": QualityPreset("480p", "854x480", 854, 480, "1500k", "96k", "veryfast"),
    "720p": QualityPreset("720p", "1280x720", 1280, 720, "3000k", "128k", "veryfast"),
    "1080p": QualityPreset("1080p", "1920x1080", 1920, 1080, "6000k", "192k", "fast"),
    "4k": QualityPreset("4K", "3840x2160", 3840, 2160, "20000k", "256k", "fast"),
    "8k": QualityPreset("8K", "7680x4320", 7680, 4320, "50000k", "320k", "medium"),
    "source": QualityPreset("Source (No Re-encode)", "original", 0, 0, "0", "0", "copy"),
}

DEFAULT_QUALITY = "720p"


def get_preset(name: str) -> QualityPreset:
    """Look up a preset by its key.

    Raises:
        ConfigError: If the name is not a known preset
    """
    try:
        return QUALITY_PRESETS[name]
    except KeyError:
        raise ConfigError(
            f"Unknown quality preset: {name!r}. Valid presets are: {', '.join(QUALITY_PRESETS)}"
        ) from None
