"""Video lifecycle operations: publish, edit, delete and re-run.

Every operation that starts a transcode commits the video and its job
tracking entry before the job is enqueued, so a worker never sees a job
whose tracking entry is not yet visible.
"""

import logging
import os
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from streamforge.core.config import settings
from streamforge.core.logging import log_error, log_info
from streamforge.core.storage import MediaStorage
from streamforge.modules.job.models import VideoJob
from streamforge.modules.job.queue import Descriptor, JobQueue, new_job_id
from streamforge.modules.job.repository import VideoJobRepository
from streamforge.modules.transcoding.models import JobKind
from streamforge.modules.transcoding.schemas import (
    RetranscodeJobDescriptor,
    TranscodeJobDescriptor,
)
from streamforge.modules.video.models import Video, VideoStatus, VideoVisibility
from streamforge.modules.video.repository import VideoRepository

logger = logging.getLogger(__name__)

CONFLICT_POLICY_SUPERSEDE = "supersede"
CONFLICT_POLICY_REJECT = "reject"

# Statuses in which a video's tracking entries belong to a live job. In
# finished/error they are leftovers of failed or lost jobs.
PENDING_STATUSES = frozenset((VideoStatus.WAITING.value, VideoStatus.PROCESSING.value))


class VideoServiceError(Exception):
    """Base exception for video service errors."""

    pass


class VideoNotFoundError(VideoServiceError):
    """Raised when video is not found."""

    pass


class InvalidFileError(VideoServiceError):
    """Raised when an uploaded file fails validation."""

    pass


class InvalidVideoStateError(VideoServiceError):
    """Raised when an operation is not allowed in the video's status."""

    pass


class JobConflictError(VideoServiceError):
    """Raised when an edit would start a job while another one is pending."""

    pass


def validate_video_file(filename: str, file_size: int) -> None:
    """Validate an uploaded video file.

    Args:
        filename: Name of the file
        file_size: Size of the file in bytes

    Raises:
        InvalidFileError: If file validation fails
    """
    ext = os.path.splitext(filename)[1].lower()
    if ext not in settings.SUPPORTED_VIDEO_EXTENSIONS:
        raise InvalidFileError(
            f"Invalid file extension '{ext}'. "
            f"Allowed: {', '.join(settings.SUPPORTED_VIDEO_EXTENSIONS)}"
        )

    if file_size > settings.MAX_VIDEO_FILE_SIZE_BYTES:
        raise InvalidFileError(
            f"File size {file_size} exceeds maximum allowed size of "
            f"{settings.MAX_VIDEO_FILE_SIZE_BYTES} bytes"
        )

    if file_size <= 0:
        raise InvalidFileError("File size must be greater than 0")


class VideoPipelineService:
    """Runs the video side of the transcoding lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        queue: JobQueue,
        storage: MediaStorage,
        conflict_policy: str = settings.JOB_CONFLICT_POLICY,
    ):
        if conflict_policy not in (CONFLICT_POLICY_SUPERSEDE, CONFLICT_POLICY_REJECT):
            raise ValueError(f"Unknown job conflict policy: {conflict_policy}")
        self.session = session
        self.queue = queue
        self.storage = storage
        self.conflict_policy = conflict_policy
        self.video_repo = VideoRepository(session)
        self.job_repo = VideoJobRepository(session)

    async def get_video(self, video_id: uuid.UUID) -> Video:
        """Get video by ID.

        Raises:
            VideoNotFoundError: If video not found
        """
        video = await self.video_repo.get_by_id(video_id)
        if not video:
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video

    async def publish(
        self,
        owner_id: uuid.UUID,
        source_path: str,
        original_file_name: str,
        unique_file_name: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        visibility: VideoVisibility = VideoVisibility.PRIVATE,
    ) -> Video:
        """Create a video for a stored upload and enqueue its transcode.

        Args:
            owner_id: Owning user UUID
            source_path: Path of the stored upload
            original_file_name: File name as uploaded
            unique_file_name: Generated storage name of the upload
            title: Video title, defaults to "Untitled Video"
            description: Video description
            visibility: Visibility setting

        Returns:
            Video: Created video in ``waiting``
        """
        video = await self.video_repo.create(
            owner_id=owner_id,
            original_file_name=original_file_name,
            unique_file_name=unique_file_name,
            source_path=source_path,
            title=title or "Untitled Video",
            description=description or "",
            visibility=visibility.value,
        )
        descriptor = TranscodeJobDescriptor(
            source_path=source_path,
            output_dir=self.storage.output_dir(unique_file_name),
            video_id=video.id,
        )
        await self._submit(video, descriptor, JobKind.TRANSCODE)
        log_info(logger, "Published video", video_id=str(video.id), owner_id=str(owner_id))
        return video

    async def edit_video(
        self,
        video_id: uuid.UUID,
        title: Optional[str] = None,
        description: Optional[str] = None,
        visibility: Optional[VideoVisibility] = None,
        new_source_path: Optional[str] = None,
        new_original_file_name: Optional[str] = None,
        new_unique_file_name: Optional[str] = None,
    ) -> Video:
        """Update metadata and, when a new file is supplied, re-transcode.

        The current package keeps being served until the new job finishes;
        the finished job then removes it.

        Raises:
            VideoNotFoundError: If video not found
            JobConflictError: If a job is pending and the policy is ``reject``
        """
        video = await self.get_video(video_id)

        if new_source_path is None:
            await self.video_repo.update_metadata(
                video,
                title=title,
                description=description,
                visibility=visibility.value if visibility else None,
            )
            await self.session.commit()
            return video

        new_unique_file_name = new_unique_file_name or os.path.basename(new_source_path)
        pending = await self.job_repo.get_for_video(video.id)
        if pending and video.status in PENDING_STATUSES and self.conflict_policy == CONFLICT_POLICY_REJECT:
            raise JobConflictError(
                f"Video {video_id} already has a pending transcoding job"
            )

        await self.video_repo.update_metadata(
            video,
            title=title,
            description=description,
            visibility=visibility.value if visibility else None,
        )

        # A running job cleans up its own source when it finds its entry gone
        superseded_source = video.source_path
        if video.status == VideoStatus.PROCESSING.value:
            superseded_source = None
        await self._cancel_jobs(video, pending)

        descriptor = RetranscodeJobDescriptor(
            source_path=new_source_path,
            output_dir=self.storage.output_dir(new_unique_file_name),
            video_id=video.id,
            previous_output_path=self.storage.output_dir(video.unique_file_name),
            replacement_original_name=new_original_file_name,
        )
        await self.video_repo.mark_waiting(video, source_path=new_source_path)
        await self._submit(video, descriptor, JobKind.RETRANSCODE)

        if superseded_source and superseded_source != new_source_path:
            self.storage.remove_file(superseded_source, reason="superseded upload")
        log_info(logger, "Replaced video source", video_id=str(video.id))
        return video

    async def delete_video(self, video_id: uuid.UUID) -> None:
        """Delete a video, cancel its jobs and remove its files.

        Raises:
            VideoNotFoundError: If video not found
        """
        video = await self.get_video(video_id)
        output_dir = self.storage.output_dir(video.unique_file_name)
        source_path = video.source_path

        jobs = await self.job_repo.get_for_video(video.id)
        await self._cancel_jobs(video, jobs)
        await self.video_repo.delete(video)
        await self.session.commit()

        self.storage.remove_tree(output_dir, reason="video deleted")
        self.storage.remove_file(source_path, reason="video deleted")
        log_info(logger, "Deleted video", video_id=str(video_id), cancelled_jobs=len(jobs))

    async def rerun(self, video_id: uuid.UUID) -> Video:
        """Enqueue a new transcode for a video in ``error``.

        Raises:
            VideoNotFoundError: If video not found
            InvalidVideoStateError: If the video is not in ``error`` or its
                source file is gone
        """
        video = await self.get_video(video_id)
        if video.status != VideoStatus.ERROR.value:
            raise InvalidVideoStateError(
                f"Only videos in error can be re-run, video {video_id} is {video.status}"
            )
        if not video.source_path or not os.path.exists(video.source_path):
            raise InvalidVideoStateError(f"Source file of video {video_id} is no longer available")

        stale = await self.job_repo.get_for_video(video.id)
        await self._cancel_jobs(video, stale)

        source_name = os.path.basename(video.source_path)
        output_dir = self.storage.output_dir(source_name)
        descriptor: Descriptor
        kind = JobKind.TRANSCODE
        if source_name != video.unique_file_name:
            # The failed job was replacing an existing package
            kind = JobKind.RETRANSCODE
            descriptor = RetranscodeJobDescriptor(
                source_path=video.source_path,
                output_dir=output_dir,
                video_id=video.id,
                previous_output_path=self.storage.output_dir(video.unique_file_name),
            )
        else:
            descriptor = TranscodeJobDescriptor(
                source_path=video.source_path,
                output_dir=output_dir,
                video_id=video.id,
            )

        await self.video_repo.mark_waiting(video)
        await self._submit(video, descriptor, kind)
        log_info(logger, "Re-running video", video_id=str(video.id), kind=kind.value)
        return video

    async def _cancel_jobs(self, video: Video, jobs: list[VideoJob]) -> None:
        for job in jobs:
            self.queue.remove(job.job_id)
        if jobs:
            await self.job_repo.delete_for_video(video.id)

    async def _submit(self, video: Video, descriptor: Descriptor, kind: JobKind) -> str:
        """Commit a tracking entry for a new job, then enqueue the job."""
        job_id = new_job_id()
        await self.job_repo.create(job_id, video.id, kind)
        await self.session.commit()

        try:
            self.queue.enqueue(descriptor, job_id=job_id)
        except Exception as e:
            log_error(logger, "Failed to enqueue transcoding job", exception=e, video_id=str(video.id))
            await self.job_repo.delete_by_job_id(job_id)
            await self.video_repo.mark_error(video.id, f"Failed to enqueue transcoding job: {e}")
            await self.session.commit()
            raise
        return job_id
