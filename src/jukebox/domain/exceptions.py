"""Exceptions raised by the jukebox domain layer."""

from typing import Optional


class JukeboxError(Exception):
    """Base exception for jukebox operations."""

    pass


class ResolutionError(JukeboxError):
    """Raised when a request cannot be mapped to a local playable file."""

    pass


class VideoUnavailableError(ResolutionError):
    """Raised when remote media is deleted, private or unavailable."""

    pass


class AgeRestrictedError(ResolutionError):
    """Raised when remote media requires age verification."""

    pass


class ProbeError(JukeboxError):
    """Raised when the playable duration of a file cannot be determined."""

    pass


class LaunchError(JukeboxError):
    """Raised when the broadcast process cannot be spawned or dies during warm-up."""

    pass


class ProcessFailure(JukeboxError):
    """Raised when the broadcast process exits with an unexpected code."""

    def __init__(self, returncode: Optional[int], stderr_tail: str = "", message: str = None):
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        super().__init__(message or f"Broadcast process exited with code {returncode}")


class ConfigError(JukeboxError):
    """Raised for invalid configuration values (unknown preset, bad delays)."""

    pass


class AIError(JukeboxError):
    """Raised when playlist generation fails."""

    pass
