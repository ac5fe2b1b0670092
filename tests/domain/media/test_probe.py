"""Tests for duration probing."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from jukebox.domain.exceptions import ProbeError
from jukebox.domain.media.probe import probe_duration, read_mutagen_duration

MUTAGEN = "jukebox.domain.media.probe.MutagenFile"
FFPROBE = "jukebox.domain.media.probe.read_ffprobe_duration"


class TestProbeDuration:
    """Tests for probe_duration."""

    @pytest.mark.anyio
    async def test_mutagen_duration(self) -> None:
        with patch(MUTAGEN, return_value=MagicMock(info=MagicMock(length=213.4))):
            assert await probe_duration(Path("song.m4a")) == 213.4

    @pytest.mark.anyio
    async def test_falls_back_to_ffprobe(self) -> None:
        with patch(MUTAGEN, return_value=None), patch(FFPROBE, AsyncMock(return_value=61.0)) as ffprobe:
            assert await probe_duration(Path("clip.mkv"), "/usr/bin/ffprobe") == 61.0

        ffprobe.assert_awaited_once_with(Path("clip.mkv"), "/usr/bin/ffprobe")

    @pytest.mark.anyio
    async def test_no_duration_raises(self) -> None:
        with patch(MUTAGEN, return_value=None), patch(FFPROBE, AsyncMock(return_value=None)):
            with pytest.raises(ProbeError):
                await probe_duration(Path("broken.m4a"))

    @pytest.mark.anyio
    async def test_zero_duration_raises(self) -> None:
        with patch(MUTAGEN, return_value=None), patch(FFPROBE, AsyncMock(return_value=0.0)):
            with pytest.raises(ProbeError):
                await probe_duration(Path("empty.m4a"))

    def test_unreadable_file(self, tmp_path: Path) -> None:
        assert read_mutagen_duration(tmp_path / "missing.m4a") is None
