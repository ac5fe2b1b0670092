"""
Configuration management for Jukebox
"""

import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from jukebox.domain.exceptions import ConfigError

APP_NAME = "jukebox"


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / APP_NAME
    return Path.home() / ".config" / APP_NAME


def get_data_dir() -> Path:
    """Get the data directory path (cache, state, logs)."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / APP_NAME
    return Path.home() / ".local" / "share" / APP_NAME


@dataclass
class StreamConfig:
    """Configuration for the broadcast encoder process."""

    rtmp_url: str = ""  # Full RTMP(S) URL including stream key
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    quality: str = "720p"  # Default preset when no saved settings exist
    settings_file: Optional[str] = None  # Default: <data dir>/stream-settings.json
    warmup_seconds: float = 2.0  # ffmpeg has no ready signal; assume alive after this
    stop_timeout: float = 3.0
    release_delay: float = 2.0  # Pause between stop and start so the endpoint frees the slot
    progress_interval: float = 1.0  # Minimum seconds between progress events


@dataclass
class CacheConfig:
    """Configuration for the local media cache."""

    cache_dir: Optional[str] = None  # Default: <data dir>/cache
    cookies_file: Optional[str] = None  # yt-dlp cookies for rate-limited sources


@dataclass
class SchedulerConfig:
    """Configuration for playback scheduling."""

    filler_path: Optional[str] = None  # Standby asset looped while the queue is empty
    completion_grace: float = 2.0  # Added to item duration to absorb encoder start-up
    resume_delay: float = 5.0  # Delay before resuming a restored queue
    crash_retry_delay: float = 2.0  # Delay before advancing after an encoder crash
    state_file: Optional[str] = None  # Default: <data dir>/queue-state.json
    auto_batch_size: int = 3


@dataclass
class AIConfig:
    """Configuration for AI playlist generation."""

    enabled: bool = False
    base_url: str = "https://text.pollinations.ai/v1"  # Any OpenAI-compatible endpoint
    model: str = "openai"
    api_key: Optional[str] = None
    temperature: float = 0.8
    timeout: float = 60.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Default: <data dir>/jukebox.log
    console_output: bool = False  # Also log to stderr


@dataclass
class Config:
    """Main configuration object."""

    stream: StreamConfig = field(default_factory=StreamConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def cache_dir(self) -> Path:
        return Path(self.cache.cache_dir or get_data_dir() / "cache").expanduser()

    @property
    def state_file(self) -> Path:
        return Path(self.scheduler.state_file or get_data_dir() / "queue-state.json").expanduser()

    @property
    def settings_file(self) -> Path:
        return Path(self.stream.settings_file or get_data_dir() / "stream-settings.json").expanduser()

    @property
    def log_file(self) -> Path:
        return Path(self.logging.log_file or get_data_dir() / "jukebox.log").expanduser()

    def validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigError: If configuration values are invalid
        """
        from jukebox.domain.broadcast.presets import get_preset

        get_preset(self.stream.quality)

        for name in ("warmup_seconds", "stop_timeout", "release_delay", "progress_interval"):
            if getattr(self.stream, name) < 0:
                raise ConfigError(f"stream.{name} must not be negative")
        for name in ("completion_grace", "resume_delay", "crash_retry_delay"):
            if getattr(self.scheduler, name) < 0:
                raise ConfigError(f"scheduler.{name} must not be negative")
        if self.scheduler.auto_batch_size < 1:
            raise ConfigError("scheduler.auto_batch_size must be at least 1")


def _find_project_config() -> Optional[Path]:
    """Find config.toml in project root by looking for pyproject.toml.

    Used during development so the project's config is found regardless of
    the working directory.
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            return config_path if config_path.exists() else None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/jukebox (or ~/.config/jukebox)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Jukebox Configuration

[stream]
# RTMP(S) endpoint including stream key (or set RTMP_URL)
rtmp_url = ""

# Encoder executables (FFMPEG_PATH overrides ffmpeg_path)
ffmpeg_path = "ffmpeg"
ffprobe_path = "ffprobe"

# Rendering preset: 480p, 720p, 1080p, 4k, 8k, source
quality = "720p"

# Seconds to wait before assuming the encoder is up
warmup_seconds = 2.0

# Seconds to wait for the encoder to exit before killing it
stop_timeout = 3.0

# Pause between stopping one stream and starting the next
release_delay = 2.0

[cache]
# Where downloaded media is kept (or set CACHE_DIR)
# cache_dir = "~/.local/share/jukebox/cache"

# yt-dlp cookies file (or set YOUTUBE_COOKIES)
# cookies_file = "~/cookies.txt"

[scheduler]
# Standby asset looped while nothing is queued (or set STANDBY_VIDEO)
# filler_path = "~/Videos/standby.mp4"

# Seconds added to each item's duration before advancing
completion_grace = 2.0

# Seconds to wait before resuming an interrupted queue on startup
resume_delay = 5.0

# Seconds to wait before moving on after an encoder crash
crash_retry_delay = 2.0

# Songs queued per auto-playlist batch
auto_batch_size = 3

[ai]
# Enable AI auto-playlists
enabled = false

# OpenAI-compatible chat completions endpoint and model
base_url = "https://text.pollinations.ai/v1"
model = "openai"

# API key (or set OPENAI_API_KEY); keyless endpoints ignore it
# api_key = "your-api-key-here"

temperature = 0.8

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/jukebox/jukebox.log)
# log_file = "/path/to/jukebox.log"

# Also output logs to console
console_output = false
""".strip()


def _merge_section(current: Any, data: dict[str, Any]) -> Any:
    """Return a copy of a section dataclass with known keys from data applied."""
    known = {f.name for f in fields(current)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(
            f"Unknown keys in [{type(current).__name__}]: {', '.join(sorted(unknown))}"
        )
    return replace(current, **data)


def _apply_env_overrides(config: Config) -> None:
    """Environment variables override TOML values."""
    if os.environ.get("RTMP_URL"):
        config.stream.rtmp_url = os.environ["RTMP_URL"]
    if os.environ.get("FFMPEG_PATH"):
        config.stream.ffmpeg_path = os.environ["FFMPEG_PATH"]
    if os.environ.get("CACHE_DIR"):
        config.cache.cache_dir = os.environ["CACHE_DIR"]
    if os.environ.get("STANDBY_VIDEO"):
        config.scheduler.filler_path = os.environ["STANDBY_VIDEO"]
    if os.environ.get("YOUTUBE_COOKIES"):
        config.cache.cookies_file = os.environ["YOUTUBE_COOKIES"]
    if os.environ.get("OPENAI_API_KEY"):
        config.ai.api_key = os.environ["OPENAI_API_KEY"]


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables (optionally from a .env in the config directory)
    override TOML values: RTMP_URL, FFMPEG_PATH, CACHE_DIR, STANDBY_VIDEO,
    YOUTUBE_COOKIES, OPENAI_API_KEY.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()
    config = Config()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        print(f"Created default configuration at: {config_path}")
    else:
        try:
            with open(config_path, "rb") as f:
                toml_data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

        for section in ("stream", "cache", "scheduler", "ai", "logging"):
            if section in toml_data:
                setattr(config, section, _merge_section(getattr(config, section), toml_data[section]))

    _apply_env_overrides(config)
    config.validate()
    return config


def ensure_directories(config: Config) -> None:
    """Create the data and cache directories if they don't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
    config.cache_dir.mkdir(parents=True, exist_ok=True)
