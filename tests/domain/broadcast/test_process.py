"""Tests for the broadcast process supervisor."""

import asyncio
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest

from jukebox.domain.broadcast.process import BroadcastProcess
from jukebox.domain.broadcast.settings import SettingsStore
from jukebox.domain.events import ErrorEvent, Event, EventBus, StreamEvent
from jukebox.domain.exceptions import LaunchError, ProcessFailure

ENDPOINT = "rtmp://live.example.com/app/key"
SPAWN = "jukebox.domain.broadcast.process.asyncio.create_subprocess_exec"


class FakeProcess:
    """Minimal asyncio.subprocess.Process look-alike."""

    def __init__(self, ignore_terminate: bool = False):
        self.pid = 4242
        self.returncode: Optional[int] = None
        self.stderr = asyncio.StreamReader()
        self.ignore_terminate = ignore_terminate
        self.terminated = False
        self.killed = False
        self._done: asyncio.Future = asyncio.get_running_loop().create_future()

    async def wait(self) -> int:
        return await self._done

    def exit(self, code: int) -> None:
        if not self._done.done():
            self.returncode = code
            self._done.set_result(code)
            self.stderr.feed_eof()

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


@pytest.fixture
def broadcast(bus: EventBus) -> BroadcastProcess:
    """Supervisor with short timeouts and in-memory settings."""
    return BroadcastProcess(
        ENDPOINT,
        SettingsStore(None),
        bus=bus,
        ffmpeg_path="ffmpeg",
        warmup_seconds=0.05,
        stop_timeout=0.05,
        release_delay=0.0,
        progress_interval=0.0,
    )


def stream_actions(events: list[Event]) -> list[str]:
    return [e.action for e in events if isinstance(e, StreamEvent)]


class TestStart:
    """Tests for BroadcastProcess.start."""

    @pytest.mark.anyio
    async def test_start_spawns_ffmpeg(self, broadcast: BroadcastProcess, events: list[Event]) -> None:
        process = FakeProcess()
        with patch(SPAWN, AsyncMock(return_value=process)) as spawn:
            handle = await broadcast.start(Path("song.m4a"), title="Song A")

        args = spawn.call_args[0]
        assert args[0] == "ffmpeg"
        assert args[-1] == ENDPOINT
        assert "song.m4a" in args
        assert handle.title == "Song A"
        assert handle.pid == 4242
        assert broadcast.is_active()
        assert stream_actions(events) == ["started"]

        await broadcast.stop()

    @pytest.mark.anyio
    async def test_spawn_failure_raises_launch_error(
        self, broadcast: BroadcastProcess, events: list[Event]
    ) -> None:
        with patch(SPAWN, AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(LaunchError):
                await broadcast.start(Path("song.m4a"))

        assert not broadcast.is_active()
        assert any(isinstance(e, ErrorEvent) for e in events)

    @pytest.mark.anyio
    async def test_exit_during_warmup_raises(self, broadcast: BroadcastProcess) -> None:
        process = FakeProcess()
        process.stderr.feed_data(b"rtmp://live.example.com/app/key: Connection refused\n")
        process.exit(1)

        with patch(SPAWN, AsyncMock(return_value=process)):
            with pytest.raises(LaunchError, match="Connection refused"):
                await broadcast.start(Path("song.m4a"))

        assert broadcast.handle is None

    @pytest.mark.anyio
    async def test_clean_exit_during_warmup_is_not_an_error(self, broadcast: BroadcastProcess) -> None:
        """Very short media can finish inside the warm-up window."""
        process = FakeProcess()
        process.exit(0)

        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("blip.m4a"))

        assert not handle.is_running()

    @pytest.mark.anyio
    async def test_second_start_stops_first(self, broadcast: BroadcastProcess) -> None:
        first, second = FakeProcess(), FakeProcess()

        with patch(SPAWN, AsyncMock(side_effect=[first, second])):
            await broadcast.start(Path("a.m4a"))
            await broadcast.start(Path("b.m4a"))

        assert first.terminated
        assert not second.terminated
        assert broadcast.handle.file_path == Path("b.m4a")

        await broadcast.stop()


class TestStop:
    """Tests for BroadcastProcess.stop."""

    @pytest.mark.anyio
    async def test_stop_terminates(self, broadcast: BroadcastProcess, events: list[Event]) -> None:
        process = FakeProcess()
        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("song.m4a"))

        await broadcast.stop()

        assert process.terminated
        assert not process.killed
        assert not broadcast.is_active()
        outcome = await handle.wait()
        assert outcome.stopped is True
        assert "stopped" in stream_actions(events)

    @pytest.mark.anyio
    async def test_stop_kills_after_timeout(self, broadcast: BroadcastProcess) -> None:
        process = FakeProcess(ignore_terminate=True)
        with patch(SPAWN, AsyncMock(return_value=process)):
            await broadcast.start(Path("song.m4a"))

        await broadcast.stop()

        assert process.terminated
        assert process.killed

    @pytest.mark.anyio
    async def test_stop_is_idempotent(self, broadcast: BroadcastProcess, events: list[Event]) -> None:
        await broadcast.stop()
        await broadcast.stop()

        assert stream_actions(events) == []


class TestOutput:
    """Tests for stderr parsing and exit classification."""

    @pytest.mark.anyio
    async def test_progress_and_errors_are_published(
        self, broadcast: BroadcastProcess, events: list[Event]
    ) -> None:
        process = FakeProcess()
        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("song.m4a"))

        process.stderr.feed_data(
            b"frame=  30 fps=30 size= 100kB time=00:00:01.00 bitrate= 800.0kbits/s speed=1x\r"
            b"[flv @ 0x1] Failed to update header\n"
            b"Stream mapping:\n"
        )
        await asyncio.sleep(0.01)

        assert handle.last_progress.elapsed_seconds == 1.0
        progress = [e for e in events if isinstance(e, StreamEvent) and e.action == "progress"]
        assert progress[0].frame == 30
        errors = [e for e in events if isinstance(e, ErrorEvent)]
        assert errors[0].source == "broadcast"
        assert "Stream mapping:" in handle.stderr_tail

        await broadcast.stop()

    @pytest.mark.anyio
    async def test_unexpected_exit_raises_process_failure(self, broadcast: BroadcastProcess) -> None:
        process = FakeProcess()
        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("song.m4a"))

        process.stderr.feed_data(b"av_interleaved_write_frame(): Broken pipe\n")
        await asyncio.sleep(0.01)
        process.exit(1)

        with pytest.raises(ProcessFailure) as exc_info:
            await handle.wait()
        assert exc_info.value.returncode == 1
        assert "Broken pipe" in exc_info.value.stderr_tail

    @pytest.mark.anyio
    @pytest.mark.parametrize("code", [0, 255])
    async def test_expected_exit_codes(self, broadcast: BroadcastProcess, code: int) -> None:
        process = FakeProcess()
        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("song.m4a"))

        process.exit(code)
        outcome = await handle.wait()

        assert outcome.returncode == code
        assert outcome.stopped is False

    @pytest.mark.anyio
    @pytest.mark.parametrize("code", [-9, -15])
    async def test_unrequested_signal_death_is_a_failure(self, broadcast: BroadcastProcess, code: int) -> None:
        """Killed from outside (OOM killer, operator) without stop()."""
        process = FakeProcess()
        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("standby.mp4"), loop=True)

        process.exit(code)

        with pytest.raises(ProcessFailure) as exc_info:
            await handle.wait()
        assert exc_info.value.returncode == code

    @pytest.mark.anyio
    async def test_requested_stop_is_expected(self, broadcast: BroadcastProcess) -> None:
        process = FakeProcess(ignore_terminate=True)
        with patch(SPAWN, AsyncMock(return_value=process)):
            handle = await broadcast.start(Path("song.m4a"))

        await broadcast.stop()
        outcome = await handle.wait()

        assert outcome.returncode == -9
        assert outcome.stopped is True
