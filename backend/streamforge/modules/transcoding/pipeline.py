"""Worker pipeline driving a video through one transcoding job.

States: waiting -> processing -> finished | error. A job:

1. exits early if its tracking entry is gone (cancelled or superseded),
2. loads the video (missing video fails the job, nothing is written),
3. marks it processing,
4. probes the source and selects renditions (none selected is an error),
5. runs the HLS transcode and the thumbnail extraction concurrently,
6. records the result and deletes the tracking entry, or, if the entry
   disappeared while the job ran or the video was reaped as stalled,
   throws the new output away.

Any failure in 4-6 sets the video to error, keeps the tracking entry and
re-raises so the queue's retry policy can apply.
"""

import asyncio
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamforge.core.logging import job_context, log_error, log_info, log_warning
from streamforge.core.metrics import (
    TRANSCODE_JOB_DURATION_SECONDS,
    TRANSCODE_JOBS_IN_PROGRESS,
    TRANSCODE_JOBS_TOTAL,
    STALLED_VIDEOS_TOTAL,
)
from streamforge.core.storage import MediaStorage
from streamforge.core.tracing import create_span, record_exception
from streamforge.modules.job.repository import VideoJobRepository
from streamforge.modules.transcoding.abr import DEFAULT_LADDER, ABRLadder, select_renditions
from streamforge.modules.transcoding.exceptions import (
    PersistenceError,
    PipelineError,
    SelectionEmptyError,
)
from streamforge.modules.transcoding.ffmpeg import THUMBNAIL_FILENAME, FFmpegTranscoder, MediaInfo
from streamforge.modules.transcoding.schemas import (
    RetranscodeJobDescriptor,
    TranscodeJobDescriptor,
)
from streamforge.modules.video.models import VideoStatus
from streamforge.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)

Descriptor = Union[TranscodeJobDescriptor, RetranscodeJobDescriptor]


class JobOutcome(str, Enum):
    """How a job that did not raise ended."""
    FINISHED = "finished"
    SKIPPED = "skipped"  # cancelled before it started
    DISCARDED = "discarded"  # cancelled or superseded while running


@dataclass
class JobResult:
    """Result returned to the queue for a completed job."""
    outcome: JobOutcome
    job_id: str
    video_id: str
    available_resolutions: list[str] = field(default_factory=list)
    duration: float = 0.0
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["outcome"] = self.outcome.value
        return data


def _writes_into_previous_package(descriptor: Descriptor) -> bool:
    if not isinstance(descriptor, RetranscodeJobDescriptor) or not descriptor.previous_output_path:
        return False
    return os.path.normpath(descriptor.previous_output_path) == os.path.normpath(descriptor.output_dir)


class VideoProcessor:
    """Executes transcoding jobs against the video and tracking stores."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        transcoder: FFmpegTranscoder,
        storage: MediaStorage,
        ladder: ABRLadder = DEFAULT_LADDER,
    ):
        self.session_maker = session_maker
        self.transcoder = transcoder
        self.storage = storage
        self.ladder = ladder

    async def process(
        self,
        job_id: str,
        descriptor: Descriptor,
        is_retry: bool = False,
    ) -> JobResult:
        """Run one job.

        Args:
            job_id: Queue job identifier
            descriptor: Job payload
            is_retry: Whether this is a queue retry of a failed attempt,
                which may restart a video that the failed attempt left in
                ``error``

        Returns:
            JobResult for finished, skipped and discarded jobs

        Raises:
            PipelineError: if the job failed
        """
        started = time.monotonic()
        TRANSCODE_JOBS_IN_PROGRESS.inc()
        outcome = "error"
        try:
            with job_context(job_id, str(descriptor.video_id)), create_span(
                "transcode.job",
                {"job.id": job_id, "job.kind": descriptor.kind, "video.id": str(descriptor.video_id)},
            ):
                result = await self._process(job_id, descriptor, is_retry)
            outcome = result.outcome.value
            return result
        finally:
            TRANSCODE_JOBS_IN_PROGRESS.dec()
            TRANSCODE_JOBS_TOTAL.labels(outcome=outcome).inc()
            TRANSCODE_JOB_DURATION_SECONDS.labels(outcome=outcome).observe(
                time.monotonic() - started
            )

    async def _process(self, job_id: str, descriptor: Descriptor, is_retry: bool) -> JobResult:
        video_id = descriptor.video_id

        async with self.session_maker() as session:
            jobs = VideoJobRepository(session)
            videos = VideoRepository(session)

            entry = await jobs.get_by_job_id(job_id)
            if entry is None:
                log_info(logger, "Job was cancelled before it started, skipping")
                return JobResult(JobOutcome.SKIPPED, job_id, str(video_id), reason="cancelled")

            video = await videos.get_by_id(video_id)
            if video is None:
                raise PersistenceError(f"Video {video_id} not found")

            startable = {VideoStatus.WAITING.value, VideoStatus.PROCESSING.value}
            if is_retry:
                startable.add(VideoStatus.ERROR.value)
            if video.status not in startable:
                log_warning(
                    logger,
                    "Video is not awaiting processing, skipping job",
                    status=video.status,
                )
                return JobResult(
                    JobOutcome.SKIPPED, job_id, str(video_id), reason=f"status={video.status}"
                )

            await videos.mark_processing(video)
            await jobs.mark_started(entry)
            await session.commit()
            log_info(logger, "Started processing video", kind=descriptor.kind)

        try:
            media_info, resolutions = await self._transcode(descriptor)
            return await self._complete(job_id, descriptor, media_info, resolutions)
        except Exception as e:
            record_exception(e)
            await self._fail(job_id, descriptor, e)
            raise

    async def _transcode(self, descriptor: Descriptor) -> tuple[MediaInfo, list[str]]:
        with create_span("transcode.probe"):
            media_info = await self.transcoder.probe(descriptor.source_path)

        variants = select_renditions(self.ladder, media_info.width, media_info.height)
        if not variants:
            smallest = self.ladder.smallest
            raise SelectionEmptyError(
                f"Source resolution {media_info.width}x{media_info.height} is below the "
                f"smallest rendition {smallest.name} ({smallest.width}x{smallest.height})"
            )

        log_info(
            logger,
            "Probed source",
            width=media_info.width,
            height=media_info.height,
            has_audio=media_info.has_audio,
            duration=media_info.duration_seconds,
            renditions=[variant.name for variant in variants],
        )

        self.storage.ensure_dir(descriptor.output_dir)
        thumbnail_path = os.path.join(descriptor.output_dir, THUMBNAIL_FILENAME)

        with create_span("transcode.encode", {"renditions": len(variants)}):
            transcode_task = asyncio.ensure_future(
                self.transcoder.transcode_hls(
                    descriptor.source_path,
                    descriptor.output_dir,
                    variants,
                    media_info.has_audio,
                )
            )
            thumbnail_task = asyncio.ensure_future(
                self.transcoder.generate_thumbnail(descriptor.source_path, thumbnail_path)
            )
            try:
                resolutions, _ = await asyncio.gather(transcode_task, thumbnail_task)
            except BaseException:
                for task in (transcode_task, thumbnail_task):
                    task.cancel()
                await asyncio.gather(transcode_task, thumbnail_task, return_exceptions=True)
                raise

        return media_info, resolutions

    async def _complete(
        self,
        job_id: str,
        descriptor: Descriptor,
        media_info: MediaInfo,
        resolutions: list[str],
    ) -> JobResult:
        video_id = descriptor.video_id

        async with self.session_maker() as session:
            jobs = VideoJobRepository(session)
            videos = VideoRepository(session)

            video = await videos.get_by_id(video_id)
            if video is None:
                reason = "video deleted"
            elif not await jobs.exists(job_id):
                reason = "superseded"
            elif video.status != VideoStatus.PROCESSING.value:
                # Reaped as stalled while running
                reason = f"status={video.status}"
            else:
                reason = None
            if reason is not None:
                current_source = video.source_path if video else None
                self._discard(descriptor, current_source, reason)
                return JobResult(JobOutcome.DISCARDED, job_id, str(video_id), reason=reason)

            replacement_name = None
            if isinstance(descriptor, RetranscodeJobDescriptor):
                replacement_name = descriptor.replacement_original_name

            await videos.mark_finished(
                video,
                available_resolutions=resolutions,
                duration=media_info.duration_seconds,
                unique_file_name=os.path.basename(os.path.normpath(descriptor.output_dir)),
                original_file_name=replacement_name,
            )
            await jobs.delete_by_job_id(job_id)
            await session.commit()

        self.storage.remove_file(descriptor.source_path, reason="source consumed")
        if isinstance(descriptor, RetranscodeJobDescriptor) and descriptor.previous_output_path:
            if not _writes_into_previous_package(descriptor):
                self.storage.remove_tree(descriptor.previous_output_path, reason="superseded package")

        log_info(
            logger,
            "Finished processing video",
            renditions=resolutions,
            duration=media_info.duration_seconds,
        )
        return JobResult(
            JobOutcome.FINISHED,
            job_id,
            str(video_id),
            available_resolutions=resolutions,
            duration=media_info.duration_seconds,
        )

    def _discard(self, descriptor: Descriptor, current_source: Optional[str], reason: str) -> None:
        """Throw away the output of a job whose result no longer applies."""
        log_warning(logger, "Discarding output of finished job", reason=reason)
        if not _writes_into_previous_package(descriptor):
            self.storage.remove_tree(descriptor.output_dir, reason="discarded job output")
        if descriptor.source_path != current_source:
            self.storage.remove_file(descriptor.source_path, reason="discarded job source")

    async def _fail(self, job_id: str, descriptor: Descriptor, exc: BaseException) -> None:
        """Record a failed job on its video, unless the job was superseded."""
        message = str(exc) if isinstance(exc, PipelineError) else f"Unexpected error: {exc}"
        log_error(logger, "Video processing failed", exception=exc, error_type=type(exc).__name__)

        if not _writes_into_previous_package(descriptor):
            self.storage.remove_tree(descriptor.output_dir, reason="failed job output")

        try:
            async with self.session_maker() as session:
                jobs = VideoJobRepository(session)
                if not await jobs.exists(job_id):
                    log_warning(logger, "Failed job was superseded, leaving video untouched")
                    return
                await VideoRepository(session).mark_error(descriptor.video_id, message)
                await session.commit()
        except Exception as db_exc:
            # The original failure is re-raised by the caller
            log_error(logger, "Could not record job failure on video", exception=db_exc)


async def reap_stalled_videos(
    session_maker: async_sessionmaker[AsyncSession],
    stall_timeout_seconds: float,
    now: Optional[datetime] = None,
) -> int:
    """Move videos stuck in ``processing`` past the stall timeout to ``error``.

    Returns:
        Number of videos marked as stalled
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=stall_timeout_seconds)
    message = f"Processing stalled: no result after {int(stall_timeout_seconds)} seconds"

    reaped = 0
    async with session_maker() as session:
        videos = VideoRepository(session)
        for video in await videos.get_stalled(cutoff):
            video_id, started_at = str(video.id), video.processing_started_at
            if await videos.mark_stalled(video, cutoff, message):
                reaped += 1
                STALLED_VIDEOS_TOTAL.inc()
                log_warning(
                    logger,
                    "Marked stalled video as error",
                    video_id=video_id,
                    processing_started_at=str(started_at),
                )
        await session.commit()
    return reaped
