"""
BroadcastProcess - supervises the single ffmpeg process feeding the endpoint.

Each start() spawns a fresh process and returns a StreamHandle whose wait()
resolves when that process exits. A reader task per handle turns ffmpeg's
stderr into progress/error events. stop() always runs before a new start,
so at most one process is ever live.
"""

import asyncio
import time
from collections import deque
from pathlib import Path
from typing import NamedTuple, Optional

from loguru import logger

from jukebox.domain.events import ErrorEvent, EventBus, StreamEvent
from jukebox.domain.exceptions import LaunchError, ProcessFailure

from .command import build_stream_args, fetch_thumbnail, is_audio_file, video_id_from_file
from .presets import QualityPreset
from .progress import StreamProgress, is_error_line, parse_progress_line, split_lines
from .settings import SettingsStore

# ffmpeg exits 255 when interrupted. Signal deaths (-signum) count only after stop()
EXPECTED_EXIT_CODES = frozenset({0, 255})

STDERR_TAIL_LINES = 30


class ExitOutcome(NamedTuple):
    """How a broadcast process ended when the exit was not a failure."""

    returncode: Optional[int]
    stopped: bool  # True when the exit was requested through stop()


class StreamHandle:
    """One live (or finished) broadcast process."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        file_path: Path,
        endpoint: str,
        preset: QualityPreset,
        loop: bool,
        title: str,
    ):
        self.process = process
        self.file_path = file_path
        self.endpoint = endpoint
        self.preset = preset
        self.loop = loop
        self.title = title
        self.started_at = time.time()
        self.stop_requested = False
        self.last_progress: Optional[StreamProgress] = None
        self.stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._last_progress_publish = 0.0
        self._exit_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def is_running(self) -> bool:
        return self._exit_task is not None and not self._exit_task.done()

    def tail_text(self, lines: int = 10) -> str:
        return " | ".join(list(self.stderr_tail)[-lines:])

    def classify(self, returncode: Optional[int]) -> ExitOutcome:
        """Map an exit code to an outcome, raising ProcessFailure if unexpected."""
        if self.stop_requested or returncode in EXPECTED_EXIT_CODES:
            return ExitOutcome(returncode, self.stop_requested)
        raise ProcessFailure(returncode, self.tail_text())

    async def wait(self) -> ExitOutcome:
        """Wait for the process to exit.

        Raises:
            ProcessFailure: If it exits with an unexpected code
        """
        returncode = await asyncio.shield(self._exit_task)
        return self.classify(returncode)


class BroadcastProcess:
    """Owns the lifecycle of exactly one ffmpeg process at a time."""

    def __init__(
        self,
        endpoint: str,
        settings: SettingsStore,
        bus: Optional[EventBus] = None,
        ffmpeg_path: str = "ffmpeg",
        warmup_seconds: float = 2.0,
        stop_timeout: float = 3.0,
        release_delay: float = 0.0,
        progress_interval: float = 1.0,
        thumbnails_dir: Optional[Path] = None,
    ):
        self.endpoint = endpoint
        self.settings = settings
        self.bus = bus
        self.ffmpeg_path = ffmpeg_path
        self.warmup_seconds = warmup_seconds
        self.stop_timeout = stop_timeout
        self.release_delay = release_delay
        self.progress_interval = progress_interval
        self.thumbnails_dir = thumbnails_dir
        self._handle: Optional[StreamHandle] = None

    @property
    def handle(self) -> Optional[StreamHandle]:
        return self._handle

    def is_active(self) -> bool:
        return self._handle is not None and self._handle.is_running()

    async def start(
        self, file_path: Path, loop: bool = False, title: Optional[str] = None
    ) -> StreamHandle:
        """Stream file_path to the endpoint, replacing whatever is running.

        Returns once the process survived the warm-up window (ffmpeg has no
        explicit ready signal).

        Raises:
            LaunchError: ffmpeg could not be spawned, or died during warm-up
        """
        await self.stop()

        if self.release_delay > 0:
            # Give the endpoint time to release the previous connection
            await asyncio.sleep(self.release_delay)

        file_path = Path(file_path)
        title = title or file_path.name
        preset = self.settings.preset
        background = await self._background_for(file_path)
        args = build_stream_args(file_path, self.endpoint, preset, loop=loop, background=background)

        logger.info(
            f"Starting stream: {file_path} (quality: {preset.name}, "
            f"audio-only: {is_audio_file(file_path)}, loop: {loop})"
        )
        logger.debug(f"FFmpeg command: {self.ffmpeg_path} {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {self.ffmpeg_path}: {e}")
            self._publish_error(f"Failed to start broadcast: {e}")
            raise LaunchError(f"Could not spawn {self.ffmpeg_path}: {e}") from e

        handle = StreamHandle(process, file_path, self.endpoint, preset, loop, title)
        handle._exit_task = asyncio.create_task(process.wait())
        handle._exit_task.add_done_callback(lambda task: self._on_exit(handle, task))
        handle._reader_task = asyncio.create_task(self._read_stderr(handle))
        self._handle = handle

        self._publish(StreamEvent(message=f"Streaming {title}", action="started", title=title))

        done, _ = await asyncio.wait({handle._exit_task}, timeout=self.warmup_seconds)
        if done:
            returncode = handle._exit_task.result()
            # Let the reader drain so the error carries ffmpeg's last words
            await asyncio.wait({handle._reader_task}, timeout=1.0)
            try:
                handle.classify(returncode)
            except ProcessFailure as e:
                if self._handle is handle:
                    self._handle = None
                raise LaunchError(
                    f"Broadcast process exited during start-up with code {returncode}: "
                    f"{handle.tail_text()}"
                ) from e
            logger.info(f"Stream of {title} finished during warm-up (code {returncode})")
        else:
            logger.info("Stream started successfully")

        return handle

    async def stop(self) -> None:
        """Stop the running process, if any.

        Idempotent. Sends SIGTERM and waits up to stop_timeout; on timeout the
        process is killed and the caller proceeds without waiting further.
        """
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        handle.stop_requested = True

        if handle.is_running():
            logger.info(f"Stopping stream: {handle.title}")
            try:
                handle.process.terminate()
            except ProcessLookupError:
                pass

            done, _ = await asyncio.wait({handle._exit_task}, timeout=self.stop_timeout)
            if not done:
                logger.warning(
                    f"Broadcast process did not exit within {self.stop_timeout}s, killing"
                )
                try:
                    handle.process.kill()
                except ProcessLookupError:
                    pass

        if handle._reader_task is not None and not handle._reader_task.done():
            handle._reader_task.cancel()

        self._publish(
            StreamEvent(message=f"Stream stopped: {handle.title}", action="stopped", title=handle.title)
        )

    async def _background_for(self, file_path: Path) -> Optional[str]:
        if not is_audio_file(file_path):
            return None

        settings = self.settings.settings
        if settings.use_thumbnail and self.thumbnails_dir is not None:
            video_id = video_id_from_file(file_path)
            if video_id:
                thumbnail = await asyncio.to_thread(fetch_thumbnail, video_id, self.thumbnails_dir)
                if thumbnail:
                    return str(thumbnail)
            logger.debug("No thumbnail available, falling back")

        if settings.cover_image and Path(settings.cover_image).expanduser().exists():
            return str(Path(settings.cover_image).expanduser())

        return None

    async def _read_stderr(self, handle: StreamHandle) -> None:
        stream = handle.process.stderr
        if stream is None:
            return

        buffer = ""
        try:
            while True:
                chunk = await stream.read(4096)
                if not chunk:
                    break
                lines, buffer = split_lines(buffer + chunk.decode("utf-8", errors="ignore"))
                for line in lines:
                    self._handle_line(handle, line)
        except (OSError, ValueError) as e:
            logger.debug(f"Broadcast stderr reader stopped: {e}")

        if buffer.strip():
            self._handle_line(handle, buffer.strip())

    def _handle_line(self, handle: StreamHandle, line: str) -> None:
        handle.stderr_tail.append(line)

        progress = parse_progress_line(line)
        if progress is not None:
            handle.last_progress = progress
            now = time.monotonic()
            if now - handle._last_progress_publish >= self.progress_interval:
                handle._last_progress_publish = now
                logger.debug(f"FFmpeg: {line[:200]}")
                self._publish(
                    StreamEvent(
                        message=f"{handle.title} @ {progress.elapsed}",
                        action="progress",
                        title=handle.title,
                        elapsed=progress.elapsed,
                        bitrate=progress.bitrate,
                        speed=progress.speed,
                        frame=progress.frame,
                    )
                )
            return

        if is_error_line(line):
            logger.error(f"FFmpeg ERROR: {line}")
            self._publish_error(line)

    def _on_exit(self, handle: StreamHandle, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        returncode = task.result()
        logger.info(f"FFmpeg exited with code {returncode}")
        if not handle.stop_requested and returncode not in EXPECTED_EXIT_CODES:
            logger.error(f"FFmpeg stderr (last lines): {handle.tail_text(STDERR_TAIL_LINES)}")
        self._publish(
            StreamEvent(
                message=f"Broadcast process exited with code {returncode}",
                action="exited",
                title=handle.title,
            )
        )

    def _publish(self, event: StreamEvent) -> None:
        if self.bus is not None:
            self.bus.publish(event)

    def _publish_error(self, message: str) -> None:
        if self.bus is not None:
            self.bus.publish(ErrorEvent(message=message, source="broadcast"))
