"""Remote media fetching and search using yt-dlp."""

import re
import time
from pathlib import Path
from typing import Callable, Optional

import yt_dlp
from loguru import logger

from jukebox.domain.exceptions import (
    AgeRestrictedError,
    ResolutionError,
    VideoUnavailableError,
)

# Type alias for download progress callback
DownloadProgressCallback = Callable[[int, Optional[str]], None]  # (percent, speed)

# Audio-first: the broadcast process synthesizes video for audio-only files
DOWNLOAD_FORMAT = "bestaudio[ext=m4a]/bestaudio/best"

# yt-dlp leaves these behind for interrupted downloads
_PARTIAL_SUFFIXES = {".part", ".ytdl", ".temp"}


def _make_progress_hook(
    callback: Optional[DownloadProgressCallback],
    throttle_ms: int = 500,
) -> Callable[[dict], None]:
    """Create yt-dlp progress hook with throttling.

    Args:
        callback: Optional callback receiving (percent 0-95, speed string)
        throttle_ms: Minimum time between updates in milliseconds

    Returns:
        Progress hook function for yt-dlp
    """
    if callback is None:
        return lambda d: None

    state = {"last_update": 0.0, "last_percent": -1}

    def hook(d: dict) -> None:
        if d.get("status") != "downloading":
            return

        now = time.time()
        if now - state["last_update"] < throttle_ms / 1000:
            return

        total = d.get("total_bytes") or d.get("total_bytes_estimate")
        downloaded = d.get("downloaded_bytes", 0)

        if total and total > 0:
            percent = int((downloaded / total) * 100)
        else:
            # No size reported: estimate from elapsed time (~50s to reach 95%)
            percent = int(d.get("elapsed", 0) * 2)

        percent = min(95, max(0, percent))  # 100 is reserved for completion

        if percent != state["last_percent"]:
            state["last_update"] = now
            state["last_percent"] = percent
            callback(percent, d.get("_speed_str"))

    return hook


def safe_stem(key: str, max_length: int = 200) -> str:
    """Turn an item key into a filesystem-safe cache stem.

    Case is preserved: YouTube ids are case-sensitive and the thumbnail
    lookup recovers them from the cached filename.

    Example:
        "yt_dQw4w9WgXcQ" -> "yt_dQw4w9WgXcQ"
        "My Song/Live" -> "My_Song_Live"
    """
    stem = re.sub(r"[^\w-]+", "_", key)
    stem = re.sub(r"_+", "_", stem)[:max_length].strip("_")
    return stem or "untitled"


def find_cached(cache_dir: Path, stem: str) -> Optional[Path]:
    """Find a completed cached download for stem, whatever its extension."""
    for candidate in sorted(cache_dir.glob(f"{stem}.*")):
        if candidate.suffix.lower() in _PARTIAL_SUFFIXES:
            continue
        if candidate.is_file() and candidate.stat().st_size > 0:
            return candidate
    return None


def download_audio(
    url: str,
    cache_dir: Path,
    stem: str,
    cookies_file: Optional[str] = None,
    progress_callback: Optional[DownloadProgressCallback] = None,
) -> Path:
    """Download remote media into cache_dir as <stem>.<ext>.

    Blocking - call from a worker thread.

    Raises:
        AgeRestrictedError: Media requires age verification
        VideoUnavailableError: Media is unavailable/deleted/private
        ResolutionError: Any other download failure
    """
    ydl_opts = {
        "format": DOWNLOAD_FORMAT,
        "outtmpl": str(cache_dir / f"{stem}.%(ext)s"),
        "noplaylist": True,
        "quiet": True,
        "no_warnings": True,
        "progress_hooks": [_make_progress_hook(progress_callback)],
    }
    if cookies_file:
        if Path(cookies_file).exists():
            ydl_opts["cookiefile"] = cookies_file
        else:
            logger.warning(f"Cookies file not found, continuing without: {cookies_file}")

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            ydl.download([url])
    except yt_dlp.utils.DownloadError as e:
        error_msg = str(e).lower()
        if "sign in" in error_msg or "age" in error_msg:
            raise AgeRestrictedError(f"Media requires age verification: {url}") from e
        if "unavailable" in error_msg or "deleted" in error_msg or "private" in error_msg:
            raise VideoUnavailableError(f"Media is unavailable, deleted, or private: {url}") from e
        raise ResolutionError(f"Download failed for {url}: {e}") from e
    except OSError as e:
        raise ResolutionError(f"Download failed for {url}: {e}") from e

    downloaded = find_cached(cache_dir, stem)
    if downloaded is None:
        raise ResolutionError(f"Download completed but file not found for {url}")

    logger.info(f"Downloaded {url} -> {downloaded}")
    return downloaded


def search_first(query: str, cookies_file: Optional[str] = None) -> Optional[dict]:
    """Return the first YouTube search hit for query.

    Blocking - call from a worker thread.

    Returns:
        Dict with id, title, url, duration - or None when nothing matched
    """
    ydl_opts = {
        "quiet": True,
        "no_warnings": True,
        "extract_flat": "in_playlist",
        "skip_download": True,
    }
    if cookies_file and Path(cookies_file).exists():
        ydl_opts["cookiefile"] = cookies_file

    try:
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(f"ytsearch1:{query}", download=False)
    except yt_dlp.utils.DownloadError as e:
        logger.warning(f"yt-dlp search failed for '{query}': {e}")
        return None

    entries = [entry for entry in (info or {}).get("entries") or [] if entry]
    if not entries:
        return None

    entry = entries[0]
    video_id = entry.get("id")
    if not video_id:
        return None

    return {
        "id": video_id,
        "title": entry.get("title") or query,
        "url": f"https://www.youtube.com/watch?v={video_id}",
        "duration": float(entry.get("duration") or 0),
    }
