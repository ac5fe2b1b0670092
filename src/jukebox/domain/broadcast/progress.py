"""Parsing of ffmpeg's diagnostic (stderr) output into progress records."""

import re
from dataclasses import dataclass
from typing import Optional

# frame=  123 fps= 30 q=28.0 size=    1024kB time=00:00:41.23 bitrate= 203.4kbits/s speed=1.01x
_FIELD_PATTERN = re.compile(r"(frame|fps|size|time|bitrate|speed)=\s*(\S+)")
_TIME_PATTERN = re.compile(r"(-?\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_ERROR_PATTERN = re.compile(
    r"error|failed|broken pipe|connection (?:refused|reset|timed out)|i/o error",
    re.IGNORECASE,
)
_LINE_SPLIT = re.compile(r"[\r\n]+")


@dataclass(frozen=True)
class StreamProgress:
    """One parsed ffmpeg stats line; any field may be missing."""

    elapsed: Optional[str] = None
    elapsed_seconds: Optional[float] = None
    bitrate: Optional[str] = None
    speed: Optional[str] = None
    frame: Optional[int] = None
    fps: Optional[float] = None
    size: Optional[str] = None


def parse_timestamp(value: str) -> Optional[float]:
    """'00:01:02.50' -> 62.5"""
    match = _TIME_PATTERN.fullmatch(value)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_progress_line(line: str) -> Optional[StreamProgress]:
    """Parse an ffmpeg stats line, or return None for anything else.

    A line counts as progress only if it reports time= (audio-only encodes
    have no frame counter).
    """
    fields = dict(_FIELD_PATTERN.findall(line))
    if "time" not in fields:
        return None

    frame = None
    if "frame" in fields and fields["frame"].isdigit():
        frame = int(fields["frame"])

    fps = None
    if "fps" in fields:
        try:
            fps = float(fields["fps"])
        except ValueError:
            pass

    elapsed = fields["time"]
    return StreamProgress(
        elapsed=elapsed,
        elapsed_seconds=parse_timestamp(elapsed),
        bitrate=fields.get("bitrate"),
        speed=fields.get("speed"),
        frame=frame,
        fps=fps,
        size=fields.get("size"),
    )


def is_error_line(line: str) -> bool:
    return bool(_ERROR_PATTERN.search(line))


def split_lines(buffer: str) -> tuple[list[str], str]:
    """Split buffered stderr text on CR/LF.

    ffmpeg rewrites its stats line with a bare carriage return, so both
    count as terminators. Returns (complete lines, unterminated remainder).
    """
    parts = _LINE_SPLIT.split(buffer)
    remainder = parts.pop()
    return [part.strip() for part in parts if part.strip()], remainder

