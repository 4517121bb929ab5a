"""Shared fixtures: in-memory database, media storage, fake ffmpeg and queue."""

import json
import os
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from streamforge.core.database import Base
from streamforge.core.storage import MediaStorage
from streamforge.modules.job import models as job_models  # noqa: F401
from streamforge.modules.job.queue import new_job_id
from streamforge.modules.transcoding.ffmpeg import FFmpegTranscoder, ProcessResult
from streamforge.modules.video import models as video_models  # noqa: F401


def ffprobe_json(
    width: int = 1920,
    height: int = 1080,
    has_audio: bool = True,
    duration: Optional[str] = "12.5",
) -> str:
    """Build ffprobe JSON output for a source."""
    streams = [{"index": 0, "codec_type": "video", "width": width, "height": height}]
    if has_audio:
        streams.append({"index": 1, "codec_type": "audio", "channels": 2})
    data: dict = {"streams": streams, "format": {}}
    if duration is not None:
        data["format"]["duration"] = duration
    return json.dumps(data)


@dataclass
class FakeRunner:
    """Stands in for the process runner, recording every command.

    ffprobe returns ``probe_output``; the HLS transcode writes a master
    playlist into its output directory; the thumbnail writes the image.
    """
    probe_output: str = field(default_factory=ffprobe_json)
    probe_result: Optional[ProcessResult] = None
    transcode_result: ProcessResult = field(default_factory=lambda: ProcessResult(0, "", ""))
    thumbnail_result: ProcessResult = field(default_factory=lambda: ProcessResult(0, "", ""))
    on_transcode: Optional[Callable[[], Awaitable[None]]] = None
    calls: list[list[str]] = field(default_factory=list)

    async def __call__(self, cmd: Sequence[str], timeout: float) -> ProcessResult:
        cmd = list(cmd)
        self.calls.append(cmd)
        if cmd[0] == "ffprobe":
            return self.probe_result or ProcessResult(0, self.probe_output, "")
        if "-filter_complex" in cmd:
            if self.on_transcode is not None:
                await self.on_transcode()
            if self.transcode_result.succeeded:
                package_dir = os.path.dirname(os.path.dirname(cmd[-1]))
                os.makedirs(package_dir, exist_ok=True)
                with open(os.path.join(package_dir, "master.m3u8"), "w") as f:
                    f.write("#EXTM3U\n")
            return self.transcode_result
        if self.thumbnail_result.succeeded:
            with open(cmd[-1], "wb") as f:
                f.write(b"\xff\xd8")
        return self.thumbnail_result

    @property
    def ffmpeg_calls(self) -> list[list[str]]:
        return [c for c in self.calls if c[0] == "ffmpeg"]


class FakeQueue:
    """In-memory JobQueue recording enqueued and removed jobs."""

    def __init__(self):
        self.enqueued: list = []
        self.removed: list[str] = []

    def enqueue(self, descriptor, job_id: Optional[str] = None) -> str:
        job_id = job_id or new_job_id()
        self.enqueued.append((job_id, descriptor))
        return job_id

    def remove(self, job_id: str) -> None:
        self.removed.append(job_id)

    @property
    def last(self):
        return self.enqueued[-1]


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def storage(tmp_path) -> MediaStorage:
    return MediaStorage(str(tmp_path / "uploads"), str(tmp_path / "videos"))


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def transcoder(runner: FakeRunner) -> FFmpegTranscoder:
    return FFmpegTranscoder(runner=runner)


@pytest.fixture
def queue() -> FakeQueue:
    return FakeQueue()
