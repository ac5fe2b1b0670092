"""
MediaResolver - guarantees a request maps to a local playable file.

Local requests are checked on disk; remote requests are served from the
cache directory or downloaded with yt-dlp. Downloads for the same key are
shared between concurrent callers instead of being started twice.
"""

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger

from jukebox.domain.events import DownloadEvent, EventBus
from jukebox.domain.exceptions import ResolutionError

from .models import MediaSource, QueueItem
from .probe import probe_duration
from .youtube import download_audio, find_cached, safe_stem, search_first


class MediaResolver:
    """Resolves QueueItems to local files and reports their duration."""

    def __init__(
        self,
        cache_dir: Path,
        bus: Optional[EventBus] = None,
        cookies_file: Optional[str] = None,
        ffprobe_path: str = "ffprobe",
    ):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.bus = bus
        self.cookies_file = cookies_file
        self.ffprobe_path = ffprobe_path
        # key -> download task, so a second ensure() joins the first one
        self._in_flight: dict[str, asyncio.Task] = {}

    def cache_stem(self, item: QueueItem) -> str:
        return safe_stem(item.key)

    async def ensure(self, item: QueueItem) -> Path:
        """Guarantee a local file exists for item and return its path.

        Raises:
            ResolutionError: Local file missing, or the remote fetch failed
        """
        source = item.source

        if source.kind == "local_file":
            if not source.path:
                raise ResolutionError(f"Local file path missing for {item.key}")
            path = Path(source.path).expanduser()
            if not path.is_file():
                logger.error(f"Local file not found: {path}")
                raise ResolutionError(f"Local file not found: {path}")
            return path

        if source.kind == "remote_url":
            if not source.url:
                raise ResolutionError(f"Remote URL missing for {item.key}")

            cached = find_cached(self.cache_dir, self.cache_stem(item))
            if cached:
                logger.info(f"File cached: {cached}")
                return cached

            task = self._in_flight.get(item.key)
            if task is None:
                task = asyncio.create_task(self._download(item))
                self._in_flight[item.key] = task
                task.add_done_callback(lambda _: self._in_flight.pop(item.key, None))
            else:
                logger.debug(f"Joining in-flight download for {item.key}")

            # Shield so one cancelled waiter does not abort the shared download
            return await asyncio.shield(task)

        raise ResolutionError(f"Unknown source type: {source.kind}")

    async def _download(self, item: QueueItem) -> Path:
        logger.info(f"Downloading {item.key} from {item.source.url}...")
        self._publish_download(item, 0, "downloading", f"Downloading {item.title}")

        def on_progress(percent: int, speed: Optional[str]) -> None:
            if self.bus is not None:
                self.bus.publish_threadsafe(
                    DownloadEvent(
                        message=f"Downloading {item.title} ({percent}%)",
                        title=item.title,
                        percent=percent,
                        speed=speed,
                    )
                )

        try:
            path = await asyncio.to_thread(
                download_audio,
                item.source.url,
                self.cache_dir,
                self.cache_stem(item),
                self.cookies_file,
                on_progress,
            )
        except ResolutionError as e:
            logger.error(f"Download failed for {item.key}: {e}")
            self._publish_download(item, 0, "error", f"Download failed for {item.title}")
            raise

        self._publish_download(item, 100, "complete", f"Downloaded {item.title}")
        return path

    def _publish_download(self, item: QueueItem, percent: int, status: str, message: str) -> None:
        if self.bus is not None:
            self.bus.publish(
                DownloadEvent(message=message, title=item.title, percent=percent, status=status)
            )

    async def duration(self, file_path: Path) -> float:
        """Playable duration in seconds (raises ProbeError)."""
        return await probe_duration(Path(file_path), self.ffprobe_path)

    async def search(self, query: str) -> Optional[QueueItem]:
        """Look up a free-text query and return a remote QueueItem, or None."""
        logger.info(f"Searching YouTube for: {query}")
        try:
            result = await asyncio.to_thread(search_first, query, self.cookies_file)
        except Exception:
            logger.exception(f"Unexpected error searching for '{query}'")
            return None

        if not result:
            return None

        return QueueItem(
            key=f"yt_{result['id']}",
            title=result["title"],
            source=MediaSource.remote(result["url"]),
        )
