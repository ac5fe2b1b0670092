"""Duration probing: mutagen first, ffprobe for containers mutagen cannot read."""

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from jukebox.domain.exceptions import ProbeError


def read_mutagen_duration(file_path: Path) -> Optional[float]:
    """Read duration from file tags/stream info. Blocking."""
    try:
        audio_file = MutagenFile(file_path)
    except (MutagenError, OSError) as e:
        logger.debug(f"mutagen could not read {file_path}: {e}")
        return None

    if audio_file is None or not hasattr(audio_file, "info"):
        return None

    return getattr(audio_file.info, "length", None)


async def read_ffprobe_duration(file_path: Path, ffprobe_path: str = "ffprobe") -> Optional[float]:
    """Ask ffprobe for the container duration."""
    try:
        process = await asyncio.create_subprocess_exec(
            ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(file_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=15.0)
    except (OSError, asyncio.TimeoutError) as e:
        logger.warning(f"ffprobe failed for {file_path}: {e}")
        return None

    if process.returncode != 0:
        logger.debug(f"ffprobe exited {process.returncode}: {stderr.decode(errors='ignore').strip()}")
        return None

    try:
        return float(stdout.decode().strip())
    except ValueError:
        return None


async def probe_duration(file_path: Path, ffprobe_path: str = "ffprobe") -> float:
    """Playable duration of file_path in seconds.

    Raises:
        ProbeError: If neither mutagen nor ffprobe report a positive duration
    """
    duration = await asyncio.to_thread(read_mutagen_duration, file_path)
    if not duration:
        duration = await read_ffprobe_duration(file_path, ffprobe_path)

    if not duration or duration <= 0:
        raise ProbeError(f"Could not determine duration of {file_path}")

    return float(duration)
