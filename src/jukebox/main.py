"""
Station runtime: wires the components together and runs until interrupted.
"""

import asyncio
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from jukebox.core.config import Config, ensure_directories
from jukebox.core.console import print_error, safe_print
from jukebox.core.output import setup_loguru
from jukebox.domain.ai import AIPlaylistProvider
from jukebox.domain.broadcast import BroadcastProcess, SettingsStore, StreamSettings
from jukebox.domain.events import (
    DownloadEvent,
    ErrorEvent,
    Event,
    EventBus,
    EventType,
    QueueAction,
    QueueEvent,
)
from jukebox.domain.exceptions import ConfigError
from jukebox.domain.media import MediaResolver, item_from_argument
from jukebox.domain.scheduler import PlaybackScheduler, StateStore

CLI_REQUESTER = "console"


@dataclass
class Station:
    """Every long-lived component of a running station."""

    config: Config
    bus: EventBus
    settings: SettingsStore
    resolver: MediaResolver
    broadcast: BroadcastProcess
    scheduler: PlaybackScheduler


def build_station(
    config: Config,
    filler: Optional[str] = None,
    quality: Optional[str] = None,
) -> Station:
    """Construct the station from configuration. No global state is involved.

    Raises:
        ConfigError: No RTMP endpoint configured, or unknown quality
    """
    if not config.stream.rtmp_url:
        raise ConfigError("No RTMP endpoint configured (set stream.rtmp_url or RTMP_URL)")

    bus = EventBus()
    settings = SettingsStore(config.settings_file, StreamSettings(quality=config.stream.quality))
    if quality:
        settings.set_quality(quality)

    resolver = MediaResolver(
        config.cache_dir,
        bus=bus,
        cookies_file=config.cache.cookies_file,
        ffprobe_path=config.stream.ffprobe_path,
    )
    broadcast = BroadcastProcess(
        config.stream.rtmp_url,
        settings,
        bus=bus,
        ffmpeg_path=config.stream.ffmpeg_path,
        warmup_seconds=config.stream.warmup_seconds,
        stop_timeout=config.stream.stop_timeout,
        release_delay=config.stream.release_delay,
        progress_interval=config.stream.progress_interval,
        thumbnails_dir=config.cache_dir / "thumbnails",
    )
    replenish = AIPlaylistProvider(config.ai) if config.ai.enabled else None
    filler_path = filler or config.scheduler.filler_path
    scheduler = PlaybackScheduler(
        resolver,
        broadcast,
        bus,
        filler_path=Path(filler_path) if filler_path else None,
        completion_grace=config.scheduler.completion_grace,
        resume_delay=config.scheduler.resume_delay,
        crash_retry_delay=config.scheduler.crash_retry_delay,
        store=StateStore(config.state_file),
        replenish=replenish,
        auto_batch_size=config.scheduler.auto_batch_size,
    )

    return Station(config, bus, settings, resolver, broadcast, scheduler)


def print_event(event: Event) -> None:
    """Console view of the events a station operator cares about."""
    if isinstance(event, QueueEvent):
        if event.action == QueueAction.PLAYING:
            safe_print(f"▶ {event.message} [{event.reason.value if event.reason else ''}]", style="bold green")
        elif event.action == QueueAction.FILLER:
            safe_print(f"⏸ {event.message}", style="dim")
        else:
            safe_print(f"  {event.message}", style="cyan")
    elif isinstance(event, DownloadEvent):
        if event.status != "downloading":
            safe_print(f"  {event.message}", style="dim")
    elif isinstance(event, ErrorEvent):
        safe_print(f"✗ {event.message}", style="red")


async def run_station(
    station: Station,
    items: Optional[list[str]] = None,
    auto_description: Optional[str] = None,
) -> None:
    """Run until SIGINT/SIGTERM, then shut down keeping the queue persisted."""
    loop = asyncio.get_running_loop()
    station.bus.bind_loop(loop)
    station.bus.subscribe(print_event, types={EventType.QUEUE, EventType.DOWNLOAD, EventType.ERROR})

    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    scheduler = station.scheduler
    if auto_description:
        scheduler.enable_auto_replenish(auto_description)

    try:
        await scheduler.start()
        for text in items or []:
            scheduler.enqueue(item_from_argument(text), CLI_REQUESTER)

        safe_print(
            f"Streaming to {station.broadcast.endpoint.rsplit('/', 1)[0]}/… "
            f"(quality: {station.settings.settings.quality}). Ctrl+C to stop.",
            style="bold",
        )
        await stop_event.wait()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        safe_print("Shutting down...", style="yellow")
        await scheduler.shutdown()


def run(
    config: Config,
    items: Optional[list[str]] = None,
    filler: Optional[str] = None,
    quality: Optional[str] = None,
    auto_description: Optional[str] = None,
) -> int:
    """Blocking entry point used by the CLI. Returns an exit code."""
    setup_loguru(config.log_file, level=config.logging.level, console_output=config.logging.console_output)
    ensure_directories(config)

    try:
        station = build_station(config, filler=filler, quality=quality)
    except ConfigError as e:
        print_error(str(e))
        return 1

    if auto_description and station.scheduler.replenish is None:
        print_error("--auto requires [ai] enabled = true in config.toml")
        return 1

    try:
        asyncio.run(run_station(station, items, auto_description))
    except ConfigError as e:
        print_error(str(e))
        return 1

    logger.info("Station exited")
    return 0
