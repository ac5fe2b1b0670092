"""Shared fixtures and in-memory stand-ins for the resolver, encoder and AI provider."""

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from jukebox.domain.ai import PlaylistSong
from jukebox.domain.broadcast.process import EXPECTED_EXIT_CODES, ExitOutcome
from jukebox.domain.events import Event, EventBus
from jukebox.domain.exceptions import AIError, LaunchError, ProcessFailure, ResolutionError
from jukebox.domain.media import MediaSource, QueueItem


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio only."""
    return "asyncio"


def make_item(key: str, title: Optional[str] = None) -> QueueItem:
    """Local-file QueueItem whose path stem equals its key."""
    return QueueItem(
        key=key,
        title=title or f"Song {key.upper()}",
        source=MediaSource.local(f"{key}.m4a"),
    )


class FakeHandle:
    """Stands in for StreamHandle; exits only when told to."""

    def __init__(self, file_path: Path, loop: bool, title: str):
        self.file_path = Path(file_path)
        self.loop = loop
        self.title = title
        self.stop_requested = False
        self._exit: asyncio.Future = asyncio.get_running_loop().create_future()

    def is_running(self) -> bool:
        return not self._exit.done()

    def finish(self, returncode: int) -> None:
        if not self._exit.done():
            self._exit.set_result(returncode)

    async def wait(self) -> ExitOutcome:
        returncode = await asyncio.shield(self._exit)
        if self.stop_requested or returncode in EXPECTED_EXIT_CODES:
            return ExitOutcome(returncode, self.stop_requested)
        raise ProcessFailure(returncode, "Connection reset by peer")


class FakeBroadcast:
    """Records starts/stops and tracks how many handles are live at once."""

    def __init__(self):
        self.handle: Optional[FakeHandle] = None
        self.handles: list[FakeHandle] = []
        self.stop_calls = 0
        self.fail_paths: set[Path] = set()
        # Non-domain errors raised by start(), e.g. OSError from thumbnail I/O
        self.errors: dict[Path, Exception] = {}
        self.max_live = 0
        # When set, start() blocks on it after spawning (a long warm-up)
        self.start_gate: Optional[asyncio.Event] = None

    def is_active(self) -> bool:
        return self.handle is not None and self.handle.is_running()

    def live_count(self) -> int:
        return sum(1 for handle in self.handles if handle.is_running())

    async def start(self, file_path: Path, loop: bool = False, title: Optional[str] = None) -> FakeHandle:
        await self.stop()
        if Path(file_path) in self.errors:
            raise self.errors[Path(file_path)]
        if Path(file_path) in self.fail_paths:
            raise LaunchError(f"ffmpeg died during start-up for {file_path}")

        handle = FakeHandle(file_path, loop, title or Path(file_path).name)
        self.handles.append(handle)
        self.handle = handle
        self.max_live = max(self.max_live, self.live_count())
        # Warm-up is a suspension point in the real process
        await asyncio.sleep(0)
        if self.start_gate is not None:
            await self.start_gate.wait()
        return handle

    async def stop(self) -> None:
        self.stop_calls += 1
        handle, self.handle = self.handle, None
        if handle is not None:
            handle.stop_requested = True
            handle.finish(-15)


class FakeResolver:
    """Resolves items to their declared path; keys can be made to fail or block."""

    def __init__(self):
        self.durations: dict[str, float] = {}
        self.failing: set[str] = set()
        self.errors: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.search_results: dict[str, QueueItem] = {}
        self.ensured: list[str] = []
        self.searched: list[str] = []

    async def ensure(self, item: QueueItem) -> Path:
        self.ensured.append(item.key)
        gate = self.gates.get(item.key)
        if gate is not None:
            await gate.wait()
        if item.key in self.errors:
            raise self.errors[item.key]
        if item.key in self.failing:
            raise ResolutionError(f"Cannot resolve {item.key}")
        return Path(item.source.path or f"/cache/{item.key}.m4a")

    async def duration(self, file_path: Path) -> float:
        return self.durations.get(Path(file_path).stem, 180.0)

    async def search(self, query: str) -> Optional[QueueItem]:
        self.searched.append(query)
        return self.search_results.get(query)


class FakeProvider:
    """ReplenishProvider returning a fixed song list."""

    def __init__(self, songs: Optional[list[PlaylistSong]] = None, error: bool = False):
        self.songs = songs or []
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def generate(self, description: str, count: int) -> list[PlaylistSong]:
        self.calls.append((description, count))
        if self.error:
            raise AIError("model unavailable")
        return list(self.songs)


@pytest.fixture
def bus() -> EventBus:
    """Fresh event bus."""
    return EventBus()


@pytest.fixture
def events(bus: EventBus) -> list[Event]:
    """Every event published on the bus, in order."""
    received: list[Event] = []
    bus.subscribe(received.append)
    return received


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def broadcast() -> FakeBroadcast:
    return FakeBroadcast()


@pytest.fixture
def filler_file(tmp_path: Path) -> Path:
    """An existing standby asset on disk."""
    path = tmp_path / "standby.mp4"
    path.write_bytes(b"\x00" * 16)
    return path
