"""
Jukebox CLI - Entry point

Subcommands:
    run     Stream queued items (or standby) to the configured endpoint
    presets List the available quality presets
    probe   Print the playable duration of a media file
"""

import argparse
import asyncio
import sys
from pathlib import Path

from jukebox.core.console import print_error, print_table, safe_print
from jukebox.domain.exceptions import ConfigError, ProbeError


def run_presets() -> int:
    """Print the quality preset table."""
    from jukebox.domain.broadcast.presets import DEFAULT_QUALITY, QUALITY_PRESETS

    print_table(
        "Quality presets",
        ["Name", "Resolution", "Video", "Audio", "x264 preset"],
        (
            (
                f"{name} (default)" if name == DEFAULT_QUALITY else name,
                preset.resolution,
                preset.video_bitrate,
                preset.audio_bitrate,
                preset.preset,
            )
            for name, preset in QUALITY_PRESETS.items()
        ),
    )
    return 0


def run_probe(file_path: str, ffprobe_path: str = "ffprobe") -> int:
    """Print the duration of a local media file."""
    from jukebox.domain.media.probe import probe_duration

    try:
        duration = asyncio.run(probe_duration(Path(file_path).expanduser(), ffprobe_path))
    except ProbeError as e:
        print_error(str(e))
        return 1

    minutes, seconds = divmod(int(duration), 60)
    safe_print(f"{file_path}: {duration:.2f}s ({minutes}:{seconds:02d})")
    return 0


def main() -> None:
    """Main entry point for the jukebox command."""
    parser = argparse.ArgumentParser(
        description="Jukebox - single-stream request scheduler for RTMP broadcasts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to config.toml (default: auto-detected)")

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the station until interrupted")
    run_parser.add_argument("items", nargs="*", help="Local files or URLs to queue on start")
    run_parser.add_argument("--filler", help="Standby asset looped while the queue is empty")
    run_parser.add_argument("--quality", help="Quality preset (see 'jukebox presets')")
    run_parser.add_argument("--auto", metavar="DESCRIPTION", help="Enable AI auto-playlist for a mood/genre")

    subparsers.add_parser("presets", help="List quality presets")

    probe_parser = subparsers.add_parser("probe", help="Print a media file's duration")
    probe_parser.add_argument("file", help="Media file to inspect")

    args = parser.parse_args()

    if args.subcommand == "presets":
        sys.exit(run_presets())

    if args.subcommand is None:
        parser.print_help()
        sys.exit(1)

    from jukebox.core.config import load_config

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        print_error(f"Configuration error: {e}")
        sys.exit(1)

    if args.subcommand == "probe":
        sys.exit(run_probe(args.file, config.stream.ffprobe_path))

    from jukebox.main import run

    sys.exit(
        run(
            config,
            items=args.items,
            filler=args.filler,
            quality=args.quality,
            auto_description=args.auto,
        )
    )


if __name__ == "__main__":
    main()
