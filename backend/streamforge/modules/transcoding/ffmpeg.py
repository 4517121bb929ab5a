"""FFmpeg/ffprobe utilities for HLS packaging.

Command construction is kept in pure functions returning argument lists so
flag generation can be unit-tested without spawning anything. The
``FFmpegTranscoder`` runs those commands as asyncio subprocesses, each one
bounded by a timeout.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence

from streamforge.modules.transcoding.abr import ABRVariant, format_bitrate
from streamforge.modules.transcoding.exceptions import (
    ProbeError,
    SelectionEmptyError,
    ThumbnailError,
    TranscodeError,
)

logger = logging.getLogger(__name__)

MASTER_PLAYLIST_NAME = "master.m3u8"
VARIANT_PLAYLIST_NAME = "index.m3u8"
SEGMENT_FILENAME = "segment_%03d.ts"
THUMBNAIL_FILENAME = "thumbnail.jpg"

# Only the tail of the tool's stderr is kept in error messages
MAX_DIAGNOSTIC_CHARS = 4000


@dataclass(frozen=True)
class MediaInfo:
    """Source properties extracted by ffprobe."""
    width: int
    height: int
    has_audio: bool
    duration_seconds: float


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of an external process run."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class ProcessTimeoutError(Exception):
    """External process exceeded its execution timeout and was killed."""

    def __init__(self, cmd: Sequence[str], timeout: float):
        super().__init__(f"{os.path.basename(cmd[0])} timed out after {timeout:.0f}s")
        self.cmd = list(cmd)
        self.timeout = timeout


ProcessRunner = Callable[[Sequence[str], float], Awaitable[ProcessResult]]


async def run_process(cmd: Sequence[str], timeout: float) -> ProcessResult:
    """Run an external command, capturing output, killing it on timeout.

    Args:
        cmd: Executable followed by its arguments
        timeout: Maximum execution time in seconds

    Returns:
        ProcessResult with exit code and decoded output

    Raises:
        ProcessTimeoutError: if the process did not exit within ``timeout``
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        await _kill_process(process)
        raise ProcessTimeoutError(cmd, timeout)
    except asyncio.CancelledError:
        # Cancellation must not leave the child running
        await _kill_process(process)
        raise

    return ProcessResult(
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def _kill_process(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _diagnostics(stderr: str) -> str:
    stderr = stderr.strip()
    if len(stderr) > MAX_DIAGNOSTIC_CHARS:
        return "..." + stderr[-MAX_DIAGNOSTIC_CHARS:]
    return stderr


def build_probe_args(input_path: str) -> list[str]:
    """Arguments for ffprobe emitting stream and format metadata as JSON."""
    return [
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        input_path,
    ]


def build_thumbnail_args(input_path: str, output_path: str) -> list[str]:
    """Arguments for ffmpeg extracting the first frame as a still image."""
    return [
        "-y",
        "-ss", "00:00:00",
        "-i", input_path,
        "-frames:v", "1",
        "-update", "1",
        output_path,
    ]


def build_hls_transcode_args(
    input_path: str,
    output_dir: str,
    variants: Sequence[ABRVariant],
    has_audio: bool,
    segment_duration: int = 4,
    keyframe_interval: int = 48,
    preset: str = "medium",
    audio_bitrate: str = "128k",
) -> list[str]:
    """Build ffmpeg arguments producing one HLS variant per ladder rung.

    The decoded video (and audio, when present) is split into one branch
    per variant. All variants share a fixed keyframe interval with scene-cut
    keyframes disabled so segments align across renditions. Output goes to
    ``<output_dir>/<variant name>/index.m3u8`` with a master playlist in
    ``output_dir``.

    Args:
        input_path: Source video file
        output_dir: Directory receiving the HLS package
        variants: Selected ladder variants, ascending
        has_audio: Whether the source has an audio stream
        segment_duration: HLS segment length in seconds
        keyframe_interval: GOP length in frames
        preset: x264 preset
        audio_bitrate: AAC bitrate per variant

    Returns:
        ffmpeg argument list (without the executable)

    Raises:
        SelectionEmptyError: if no variants were selected
    """
    if not variants:
        raise SelectionEmptyError("No renditions selected for transcoding")

    count = len(variants)
    video_labels = "".join(f"[v{i}]" for i in range(count))
    filter_graph = f"[0:v]split={count}{video_labels}"
    if has_audio:
        audio_labels = "".join(f"[a{i}]" for i in range(count))
        filter_graph += f";[0:a]asplit={count}{audio_labels}"

    args = ["-y", "-i", input_path, "-filter_complex", filter_graph]

    for i in range(count):
        args.extend(["-map", f"[v{i}]"])
        if has_audio:
            args.extend(["-map", f"[a{i}]"])

    args.extend([
        "-x264opts", f"keyint={keyframe_interval}:min-keyint={keyframe_interval}:no-scenecut",
        "-c:v", "libx264",
        "-preset", preset,
    ])
    if has_audio:
        args.extend(["-c:a", "aac", "-b:a", audio_bitrate])

    for i, variant in enumerate(variants):
        args.extend([
            f"-b:v:{i}", format_bitrate(variant.bitrate),
            f"-s:v:{i}", f"{variant.width}x{variant.height}",
            f"-maxrate:v:{i}", format_bitrate(variant.max_bitrate),
            f"-bufsize:v:{i}", format_bitrate(variant.buffer_size),
        ])

    if has_audio:
        stream_map = " ".join(
            f"v:{i},a:{i},name:{variant.name}" for i, variant in enumerate(variants)
        )
    else:
        stream_map = " ".join(
            f"v:{i},name:{variant.name}" for i, variant in enumerate(variants)
        )

    args.extend([
        "-f", "hls",
        "-hls_time", str(segment_duration),
        "-hls_playlist_type", "vod",
        "-hls_segment_type", "mpegts",
        "-master_pl_name", MASTER_PLAYLIST_NAME,
        "-var_stream_map", stream_map,
        "-hls_segment_filename", os.path.join(output_dir, "%v", SEGMENT_FILENAME),
        os.path.join(output_dir, "%v", VARIANT_PLAYLIST_NAME),
    ])

    return args


def command_as_string(cmd: Sequence[str]) -> str:
    """Human-readable version of a command for logging."""
    return " ".join(cmd)


def parse_probe_output(raw: str) -> MediaInfo:
    """Extract dimensions, audio presence and duration from ffprobe JSON.

    Raises:
        ProbeError: if the output is not valid JSON or has no video stream
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProbeError(f"Unparsable ffprobe output: {e}") from e

    if not isinstance(data, dict):
        raise ProbeError("Unparsable ffprobe output: expected a JSON object")

    streams = data.get("streams") or []
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video_stream is None:
        raise ProbeError("No video stream found")

    try:
        width = int(video_stream["width"])
        height = int(video_stream["height"])
    except (KeyError, TypeError, ValueError) as e:
        raise ProbeError("Video stream has no usable dimensions") from e

    has_audio = any(s.get("codec_type") == "audio" for s in streams)

    try:
        duration = float((data.get("format") or {}).get("duration", 0.0))
    except (TypeError, ValueError):
        duration = 0.0

    return MediaInfo(
        width=width,
        height=height,
        has_audio=has_audio,
        duration_seconds=duration,
    )


class FFmpegTranscoder:
    """Runs ffprobe/ffmpeg for probing, HLS transcoding and thumbnails."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        probe_timeout: float = 60.0,
        transcode_timeout: float = 3 * 60 * 60,
        segment_duration: int = 4,
        keyframe_interval: int = 48,
        preset: str = "medium",
        audio_bitrate: str = "128k",
        runner: Optional[ProcessRunner] = None,
    ):
        """Initialize transcoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
            probe_timeout: Timeout for one ffprobe run, in seconds
            transcode_timeout: Timeout for one ffmpeg run, in seconds
            segment_duration: HLS segment duration in seconds
            keyframe_interval: GOP length in frames
            preset: x264 preset
            audio_bitrate: AAC bitrate per variant
            runner: Process runner, replaced in tests
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.probe_timeout = probe_timeout
        self.transcode_timeout = transcode_timeout
        self.segment_duration = segment_duration
        self.keyframe_interval = keyframe_interval
        self.preset = preset
        self.audio_bitrate = audio_bitrate
        self._run = runner or run_process

    @classmethod
    def from_settings(cls, settings, runner: Optional[ProcessRunner] = None) -> "FFmpegTranscoder":
        return cls(
            ffmpeg_path=settings.FFMPEG_PATH,
            ffprobe_path=settings.FFPROBE_PATH,
            probe_timeout=settings.PROBE_TIMEOUT_SECONDS,
            transcode_timeout=settings.TRANSCODE_TIMEOUT_SECONDS,
            segment_duration=settings.HLS_SEGMENT_DURATION,
            keyframe_interval=settings.KEYFRAME_INTERVAL_FRAMES,
            preset=settings.X264_PRESET,
            audio_bitrate=settings.AUDIO_BITRATE,
            runner=runner,
        )

    async def probe(self, input_path: str) -> MediaInfo:
        """Probe a source file.

        Raises:
            ProbeError: on tool failure, timeout, bad output or no video stream
        """
        cmd = [self.ffprobe_path, *build_probe_args(input_path)]
        try:
            result = await self._run(cmd, self.probe_timeout)
        except ProcessTimeoutError as e:
            raise ProbeError(str(e)) from e
        except OSError as e:
            raise ProbeError(f"Could not start ffprobe: {e}") from e

        if not result.succeeded:
            raise ProbeError(
                f"ffprobe failed with code=({result.returncode}): {_diagnostics(result.stderr)}"
            )
        return parse_probe_output(result.stdout)

    async def transcode_hls(
        self,
        input_path: str,
        output_dir: str,
        variants: Sequence[ABRVariant],
        has_audio: bool,
    ) -> list[str]:
        """Transcode a source into an HLS package.

        Returns:
            Names of the produced variants, in ladder order

        Raises:
            SelectionEmptyError: if ``variants`` is empty
            TranscodeError: on non-zero exit or timeout
        """
        args = build_hls_transcode_args(
            input_path,
            output_dir,
            variants,
            has_audio,
            segment_duration=self.segment_duration,
            keyframe_interval=self.keyframe_interval,
            preset=self.preset,
            audio_bitrate=self.audio_bitrate,
        )
        cmd = [self.ffmpeg_path, *args]
        logger.debug("Running transcode: %s", command_as_string(cmd))

        try:
            result = await self._run(cmd, self.transcode_timeout)
        except ProcessTimeoutError as e:
            raise TranscodeError(str(e)) from e
        except OSError as e:
            raise TranscodeError(f"Could not start ffmpeg: {e}") from e

        if not result.succeeded:
            raise TranscodeError(
                f"ffmpeg transcoding failed with code=({result.returncode}): "
                f"{_diagnostics(result.stderr)}"
            )
        return [variant.name for variant in variants]

    async def generate_thumbnail(self, input_path: str, output_path: str) -> str:
        """Extract the first frame of a source as a still image.

        Raises:
            ThumbnailError: on non-zero exit or timeout
        """
        cmd = [self.ffmpeg_path, *build_thumbnail_args(input_path, output_path)]
        try:
            result = await self._run(cmd, self.probe_timeout)
        except ProcessTimeoutError as e:
            raise ThumbnailError(str(e)) from e
        except OSError as e:
            raise ThumbnailError(f"Could not start ffmpeg: {e}") from e

        if not result.succeeded:
            raise ThumbnailError(
                f"ffmpeg thumbnail failed with code=({result.returncode}): "
                f"{_diagnostics(result.stderr)}"
            )
        return output_path
