"""
Logging setup using Loguru.
The station runs headless, so the log file is the primary record; stderr
output is opt-in for foreground runs.
"""

import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"


def setup_loguru(log_file: Path, level: str = "INFO", console_output: bool = False) -> None:
    """
    Configure loguru with a rotating file sink and optional stderr sink.

    Args:
        log_file: Path to log file
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        console_output: Also log to stderr
    """
    # Remove default handler
    logger.remove()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation="10 MB",
        retention=5,  # Keep 5 backup files
        level=level,
        format=LOG_FORMAT,
        # Sinks are written from yt-dlp worker threads too
        enqueue=False,
    )

    if console_output:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logger.info(f"Loguru initialized: {log_file} (level={level})")
