"""Tests for source probing and the ffmpeg runner wrappers."""

import json

import pytest

from conftest import FakeRunner, ffprobe_json
from streamforge.modules.transcoding.abr import DEFAULT_LADDER
from streamforge.modules.transcoding.exceptions import ProbeError, ThumbnailError, TranscodeError
from streamforge.modules.transcoding.ffmpeg import (
    MAX_DIAGNOSTIC_CHARS,
    FFmpegTranscoder,
    ProcessResult,
    ProcessTimeoutError,
    parse_probe_output,
)


class TestParseProbeOutput:
    """Tests for parse_probe_output."""

    def test_video_and_audio(self) -> None:
        info = parse_probe_output(ffprobe_json(1920, 1080, has_audio=True, duration="42.5"))
        assert (info.width, info.height) == (1920, 1080)
        assert info.has_audio is True
        assert info.duration_seconds == 42.5

    def test_video_only(self) -> None:
        info = parse_probe_output(ffprobe_json(640, 360, has_audio=False))
        assert info.has_audio is False

    def test_first_video_stream_wins(self) -> None:
        raw = json.dumps({
            "streams": [
                {"codec_type": "audio"},
                {"codec_type": "video", "width": 1280, "height": 720},
                {"codec_type": "video", "width": 320, "height": 240},
            ],
            "format": {"duration": "3.0"},
        })
        info = parse_probe_output(raw)
        assert (info.width, info.height) == (1280, 720)
        assert info.has_audio is True

    @pytest.mark.parametrize("duration", [None, "N/A", ""])
    def test_missing_or_invalid_duration_is_zero(self, duration) -> None:
        info = parse_probe_output(ffprobe_json(duration=duration))
        assert info.duration_seconds == 0.0

    def test_no_video_stream(self) -> None:
        raw = json.dumps({"streams": [{"codec_type": "audio"}], "format": {}})
        with pytest.raises(ProbeError, match="No video stream"):
            parse_probe_output(raw)

    def test_video_stream_without_dimensions(self) -> None:
        raw = json.dumps({"streams": [{"codec_type": "video"}], "format": {}})
        with pytest.raises(ProbeError):
            parse_probe_output(raw)

    @pytest.mark.parametrize("raw", ["", "not json", "[1, 2]"])
    def test_unparsable_output(self, raw: str) -> None:
        with pytest.raises(ProbeError, match="Unparsable"):
            parse_probe_output(raw)


class TestTranscoderProbe:
    """Tests for FFmpegTranscoder.probe with a fake process runner."""

    @pytest.mark.asyncio
    async def test_probe_runs_ffprobe_with_timeout(self) -> None:
        seen = []

        async def runner(cmd, timeout):
            seen.append((list(cmd), timeout))
            return ProcessResult(0, ffprobe_json(854, 480, has_audio=False), "")

        transcoder = FFmpegTranscoder(ffprobe_path="/usr/bin/ffprobe", probe_timeout=7, runner=runner)
        info = await transcoder.probe("/uploads/a.mp4")

        assert (info.width, info.height, info.has_audio) == (854, 480, False)
        cmd, timeout = seen[0]
        assert cmd[0] == "/usr/bin/ffprobe"
        assert cmd[-1] == "/uploads/a.mp4"
        assert timeout == 7

    @pytest.mark.asyncio
    async def test_nonzero_exit_includes_code_and_stderr(self) -> None:
        runner = FakeRunner(probe_result=ProcessResult(1, "", "moov atom not found"))
        transcoder = FFmpegTranscoder(runner=runner)

        with pytest.raises(ProbeError) as exc_info:
            await transcoder.probe("/uploads/broken.mp4")
        assert "code=(1)" in str(exc_info.value)
        assert "moov atom not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_long_stderr_is_truncated(self) -> None:
        stderr = "x" * (MAX_DIAGNOSTIC_CHARS * 2)
        transcoder = FFmpegTranscoder(runner=FakeRunner(probe_result=ProcessResult(1, "", stderr)))

        with pytest.raises(ProbeError) as exc_info:
            await transcoder.probe("/uploads/broken.mp4")
        assert len(str(exc_info.value)) < MAX_DIAGNOSTIC_CHARS + 100

    @pytest.mark.asyncio
    async def test_timeout_becomes_probe_error(self) -> None:
        async def runner(cmd, timeout):
            raise ProcessTimeoutError(cmd, timeout)

        transcoder = FFmpegTranscoder(probe_timeout=5, runner=runner)
        with pytest.raises(ProbeError, match="timed out"):
            await transcoder.probe("/uploads/slow.mp4")

    @pytest.mark.asyncio
    async def test_missing_binary_becomes_probe_error(self) -> None:
        async def runner(cmd, timeout):
            raise FileNotFoundError(2, "No such file or directory", cmd[0])

        transcoder = FFmpegTranscoder(runner=runner)
        with pytest.raises(ProbeError, match="Could not start ffprobe"):
            await transcoder.probe("/uploads/a.mp4")


class TestTranscoderEncode:
    """Tests for FFmpegTranscoder transcode and thumbnail wrappers."""

    @pytest.mark.asyncio
    async def test_transcode_returns_variant_names(self, tmp_path) -> None:
        runner = FakeRunner()
        transcoder = FFmpegTranscoder(transcode_timeout=99, runner=runner)
        variants = list(DEFAULT_LADDER.variants[:3])

        names = await transcoder.transcode_hls("in.mp4", str(tmp_path / "out"), variants, True)

        assert names == ["144p", "240p", "360p"]
        assert runner.calls[0][0] == "ffmpeg"
        assert "-filter_complex" in runner.calls[0]

    @pytest.mark.asyncio
    async def test_transcode_failure(self, tmp_path) -> None:
        runner = FakeRunner(transcode_result=ProcessResult(187, "", "Conversion failed!"))
        transcoder = FFmpegTranscoder(runner=runner)

        with pytest.raises(TranscodeError) as exc_info:
            await transcoder.transcode_hls("in.mp4", str(tmp_path), list(DEFAULT_LADDER.variants[:1]), False)
        assert "code=(187)" in str(exc_info.value)
        assert "Conversion failed!" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_thumbnail_failure(self, tmp_path) -> None:
        runner = FakeRunner(thumbnail_result=ProcessResult(1, "", "Invalid data"))
        transcoder = FFmpegTranscoder(runner=runner)

        with pytest.raises(ThumbnailError, match="Invalid data"):
            await transcoder.generate_thumbnail("in.mp4", str(tmp_path / "thumbnail.jpg"))
