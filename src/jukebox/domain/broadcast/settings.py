"""Persisted stream settings (quality preset, background image options)."""

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from jukebox.utils.files import atomic_write_json, safe_json_read

from .presets import DEFAULT_QUALITY, QUALITY_PRESETS, QualityPreset, get_preset


@dataclass
class StreamSettings:
    quality: str = DEFAULT_QUALITY
    cover_image: Optional[str] = None  # Background for audio-only sources
    use_thumbnail: bool = False  # Prefer the YouTube thumbnail as background


class SettingsStore:
    """Loads, validates and persists StreamSettings as JSON."""

    def __init__(self, path: Optional[Path], defaults: Optional[StreamSettings] = None):
        self.path = Path(path) if path else None
        self.settings = defaults or StreamSettings()
        self._load()

    def _load(self) -> None:
        if self.path is None:
            return

        data = safe_json_read(self.path, default={})
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed stream settings in {self.path}")
            return

        quality = data.get("quality")
        if quality in QUALITY_PRESETS:
            self.settings.quality = quality
            logger.info(f"Loaded quality setting: {quality}")
        if data.get("cover_image"):
            self.settings.cover_image = data["cover_image"]
        if isinstance(data.get("use_thumbnail"), bool):
            self.settings.use_thumbnail = data["use_thumbnail"]

    def save(self) -> None:
        if self.path is not None:
            atomic_write_json(self.path, asdict(self.settings))

    @property
    def preset(self) -> QualityPreset:
        return get_preset(self.settings.quality)

    def set_quality(self, name: str) -> None:
        """Select a preset by key (raises ConfigError for unknown names)."""
        get_preset(name)
        self.settings.quality = name
        self.save()
        logger.info(f"Quality set to: {name}")

    def set_cover_image(self, image_path: Optional[str]) -> bool:
        """Set (or clear with None) the cover image; False if the file is missing."""
        if image_path and not Path(image_path).expanduser().exists():
            logger.warning(f"Cover image not found: {image_path}")
            return False
        self.settings.cover_image = image_path or None
        self.save()
        logger.info(f"Cover image set to: {image_path or '(none - black background)'}")
        return True

    def set_use_thumbnail(self, use: bool) -> None:
        self.settings.use_thumbnail = use
        self.save()
        logger.info(f"Thumbnail background: {'enabled' if use else 'disabled'}")
