"""Tests for ffmpeg argument construction."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from jukebox.domain.broadcast.command import (
    build_stream_args,
    fetch_thumbnail,
    is_audio_file,
    video_id_from_file,
)
from jukebox.domain.broadcast.presets import get_preset

ENDPOINT = "rtmp://live.example.com/app/key"


class TestBuildStreamArgs:
    """Tests for build_stream_args."""

    def test_audio_gets_black_background(self) -> None:
        args = build_stream_args(Path("song.m4a"), ENDPOINT, get_preset("720p"))

        assert args[:4] == ["-f", "lavfi", "-i", "color=c=black:s=1280x720:r=30"]
        assert args[args.index("-map") + 1] == "0:v"
        assert "-shortest" in args
        assert "-stream_loop" not in args
        assert args[-3:] == ["-f", "flv", ENDPOINT]

    def test_audio_with_cover_image(self) -> None:
        args = build_stream_args(Path("song.mp3"), ENDPOINT, get_preset("1080p"), background="/img/cover.jpg")

        assert args[:6] == ["-loop", "1", "-framerate", "30", "-i", "/img/cover.jpg"]
        assert "scale=1920:1080:force_original_aspect_ratio=decrease,pad=1920:1080:(ow-iw)/2:(oh-ih)/2" in args

    def test_audio_with_source_preset_uses_fallback_size(self) -> None:
        args = build_stream_args(Path("song.flac"), ENDPOINT, get_preset("source"))

        assert "color=c=black:s=1280x720:r=30" in args

    def test_video_reencode(self) -> None:
        args = build_stream_args(Path("clip.mp4"), ENDPOINT, get_preset("480p"))

        assert args[0] == "-re"
        assert args[args.index("-preset") + 1] == "veryfast"
        assert args[args.index("-maxrate") + 1] == "1500k"
        assert args[args.index("-bufsize") + 1] == "3000k"
        assert args[args.index("-b:a") + 1] == "96k"

    def test_video_passthrough(self) -> None:
        args = build_stream_args(Path("clip.mkv"), ENDPOINT, get_preset("source"))

        assert args[args.index("-c:v") + 1] == "copy"
        assert "-vf" not in args

    def test_loop_mode(self) -> None:
        args = build_stream_args(Path("standby.mp4"), ENDPOINT, get_preset("720p"), loop=True)

        loop_at = args.index("-stream_loop")
        assert args[loop_at + 1] == "-1"
        assert loop_at < args.index("-i")


class TestHelpers:
    """Tests for file type and thumbnail helpers."""

    def test_is_audio_file(self) -> None:
        assert is_audio_file(Path("a.OPUS"))
        assert not is_audio_file(Path("a.mp4"))

    def test_video_id_from_file(self) -> None:
        assert video_id_from_file(Path("/cache/yt_dQw4w9WgXcQ.m4a")) == "dQw4w9WgXcQ"
        assert video_id_from_file(Path("/music/song.m4a")) is None

    def test_fetch_thumbnail_uses_cache(self, tmp_path: Path) -> None:
        cached = tmp_path / "dQw4w9WgXcQ.jpg"
        cached.write_bytes(b"jpg")

        with patch("jukebox.domain.broadcast.command.requests.get") as mock_get:
            assert fetch_thumbnail("dQw4w9WgXcQ", tmp_path) == cached
            mock_get.assert_not_called()

    def test_fetch_thumbnail_downloads(self, tmp_path: Path) -> None:
        response = MagicMock(content=b"image-bytes")

        with patch("jukebox.domain.broadcast.command.requests.get", return_value=response) as mock_get:
            path = fetch_thumbnail("dQw4w9WgXcQ", tmp_path / "thumbs")

        assert path.read_bytes() == b"image-bytes"
        assert "dQw4w9WgXcQ" in mock_get.call_args[0][0]

    def test_fetch_thumbnail_failure_returns_none(self, tmp_path: Path) -> None:
        with patch(
            "jukebox.domain.broadcast.command.requests.get",
            side_effect=requests.ConnectionError("offline"),
        ):
            assert fetch_thumbnail("dQw4w9WgXcQ", tmp_path) is None

    def test_fetch_thumbnail_unwritable_dir_returns_none(self, tmp_path: Path) -> None:
        """A thumbnails path that is a regular file must not raise."""
        blocker = tmp_path / "thumbs"
        blocker.write_text("not a directory")
        response = MagicMock(content=b"image-bytes")

        with patch("jukebox.domain.broadcast.command.requests.get", return_value=response):
            assert fetch_thumbnail("dQw4w9WgXcQ", blocker) is None
