"""ffmpeg command-line construction for the broadcast process.

RTMP endpoints require a video elementary stream, so audio-only sources get
a synthesized background: a black color field, a looped cover image, or a
looped thumbnail.
"""

import re
from pathlib import Path
from typing import Optional

import requests
from loguru import logger

from .presets import QualityPreset

AUDIO_ONLY_EXTENSIONS = {".m4a", ".mp3", ".aac", ".flac", ".wav", ".ogg", ".opus"}

# Resolution used for synthesized video when the preset keeps the source size
FALLBACK_WIDTH, FALLBACK_HEIGHT = 1280, 720
BACKGROUND_FPS = 30

THUMBNAIL_URL = "https://i3.ytimg.com/vi/{video_id}/hqdefault.jpg"
_YOUTUBE_KEY_PATTERN = re.compile(r"yt_([a-zA-Z0-9_-]{11})")


def is_audio_file(file_path: Path) -> bool:
    return Path(file_path).suffix.lower() in AUDIO_ONLY_EXTENSIONS


def _scale_filter(width: int, height: int) -> str:
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )


def build_stream_args(
    file_path: Path,
    endpoint: str,
    preset: QualityPreset,
    loop: bool = False,
    background: Optional[str] = None,
) -> list[str]:
    """Arguments (without the executable) to stream file_path to endpoint.

    Args:
        file_path: Media file to stream
        endpoint: RTMP(S) URL including stream key
        preset: Rendering profile
        loop: Repeat the input forever (filler playback)
        background: Image path/URL looped behind audio-only sources;
            a black color field when None
    """
    file_path = Path(file_path)
    loop_args = ["-stream_loop", "-1"] if loop else []

    if is_audio_file(file_path):
        width = preset.width or FALLBACK_WIDTH
        height = preset.height or FALLBACK_HEIGHT

        if background:
            video_input = ["-loop", "1", "-framerate", str(BACKGROUND_FPS), "-i", background]
        else:
            video_input = [
                "-f", "lavfi",
                "-i", f"color=c=black:s={width}x{height}:r={BACKGROUND_FPS}",
            ]

        return [
            *video_input,
            "-re",
            *loop_args,
            "-i", str(file_path),
            "-map", "0:v",
            "-map", "1:a",
            "-c:v", "libx264",
            "-preset", "ultrafast",
            "-tune", "stillimage",
            "-pix_fmt", "yuv420p",
            "-vf", _scale_filter(width, height),
            "-c:a", "aac",
            "-b:a", "192k",
            "-ar", "48000",
            # The background never ends on its own
            "-shortest",
            "-f", "flv",
            endpoint,
        ]

    if preset.is_passthrough:
        return [
            "-re",
            *loop_args,
            "-i", str(file_path),
            "-c:v", "copy",
            "-c:a", "aac",
            "-b:a", "192k",
            "-ar", "48000",
            "-f", "flv",
            "-flvflags", "no_duration_filesize",
            endpoint,
        ]

    return [
        "-re",
        *loop_args,
        "-i", str(file_path),
        "-vf", _scale_filter(preset.width, preset.height),
        "-c:v", "libx264",
        "-preset", preset.preset,
        "-maxrate", preset.video_bitrate,
        "-bufsize", f"{preset.video_bitrate_kbps * 2}k",
        "-pix_fmt", "yuv420p",
        "-g", "50",
        "-c:a", "aac",
        "-b:a", preset.audio_bitrate,
        "-ar", "48000",
        "-f", "flv",
        "-flvflags", "no_duration_filesize",
        endpoint,
    ]


def video_id_from_file(file_path: Path) -> Optional[str]:
    """Recover the YouTube video id from a cached 'yt_<id>' filename."""
    match = _YOUTUBE_KEY_PATTERN.search(Path(file_path).name)
    return match.group(1) if match else None


def fetch_thumbnail(video_id: str, thumbnails_dir: Path, timeout: float = 10.0) -> Optional[Path]:
    """Download (or reuse) the thumbnail for a video. Blocking.

    Returns:
        Local thumbnail path, or None when it could not be fetched or stored
    """
    thumb_path = thumbnails_dir / f"{video_id}.jpg"
    if thumb_path.is_file():
        logger.debug(f"Using cached thumbnail: {thumb_path}")
        return thumb_path

    url = THUMBNAIL_URL.format(video_id=video_id)
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.warning(f"Failed to download thumbnail {url}: {e}")
        return None

    try:
        thumbnails_dir.mkdir(parents=True, exist_ok=True)
        thumb_path.write_bytes(response.content)
    except OSError as e:
        logger.warning(f"Could not save thumbnail {thumb_path}: {e}")
        return None

    logger.info(f"Thumbnail saved: {thumb_path}")
    return thumb_path
