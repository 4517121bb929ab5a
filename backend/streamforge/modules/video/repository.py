"""Video repository for database operations.

Status writes are the only persistence the pipeline performs on a video;
each is a single-row update, so concurrent workers touching different
videos never contend.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from streamforge.modules.video.models import (
    InvalidStatusTransitionError,
    Video,
    VideoStatus,
    VideoVisibility,
    can_transition,
)


class VideoRepository:
    """Repository for Video CRUD and lifecycle operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        owner_id: uuid.UUID,
        original_file_name: str,
        unique_file_name: str,
        source_path: str,
        title: str = "Untitled Video",
        description: str = "",
        visibility: str = VideoVisibility.PRIVATE.value,
    ) -> Video:
        """Create a new video in ``waiting`` status.

        Args:
            owner_id: Owning user UUID
            original_file_name: File name as uploaded
            unique_file_name: Generated storage name
            source_path: Path of the stored upload
            title: Video title
            description: Video description
            visibility: Video visibility setting

        Returns:
            Video: Created video instance
        """
        video = Video(
            owner_id=owner_id,
            title=title,
            description=description,
            visibility=visibility,
            original_file_name=original_file_name,
            unique_file_name=unique_file_name,
            source_path=source_path,
            status=VideoStatus.WAITING.value,
            available_resolutions=[],
            duration=0.0,
        )
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_id(self, video_id: uuid.UUID) -> Optional[Video]:
        """Get video by ID."""
        result = await self.session.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def update_metadata(
        self,
        video: Video,
        title: Optional[str] = None,
        description: Optional[str] = None,
        visibility: Optional[str] = None,
    ) -> Video:
        """Update owner-editable metadata fields that were supplied."""
        if title is not None:
            video.title = title
        if description is not None:
            video.description = description
        if visibility is not None:
            video.visibility = visibility
        await self.session.flush()
        return video

    def _transition(self, video: Video, target: VideoStatus) -> None:
        current = VideoStatus(video.status)
        if not can_transition(current, target):
            raise InvalidStatusTransitionError(
                f"Video {video.id} cannot move from {current.value} to {target.value}"
            )
        video.status = target.value

    async def mark_waiting(self, video: Video, source_path: Optional[str] = None) -> None:
        """Move a video back to ``waiting`` for a new job.

        Resolutions and duration are kept so the previous package is still
        served until the new job finishes.
        """
        self._transition(video, VideoStatus.WAITING)
        video.processing_started_at = None
        if source_path is not None:
            video.source_path = source_path
        await self.session.flush()

    async def mark_processing(self, video: Video) -> None:
        self._transition(video, VideoStatus.PROCESSING)
        video.processing_started_at = datetime.now(timezone.utc)
        await self.session.flush()

    async def mark_finished(
        self,
        video: Video,
        available_resolutions: list[str],
        duration: float,
        unique_file_name: str,
        original_file_name: Optional[str] = None,
    ) -> None:
        """Record a successful transcode."""
        self._transition(video, VideoStatus.FINISHED)
        video.available_resolutions = list(available_resolutions)
        video.duration = duration
        video.unique_file_name = unique_file_name
        if original_file_name:
            video.original_file_name = original_file_name
        video.error_message = None
        video.source_path = None
        video.processing_started_at = None
        await self.session.flush()

    async def mark_error(self, video_id: uuid.UUID, error_message: str) -> bool:
        """Set a video to ``error`` with a message.

        Issued as a standalone UPDATE so it works after the job's session
        was rolled back.

        Returns:
            True if a row was updated
        """
        result = await self.session.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(
                status=VideoStatus.ERROR.value,
                error_message=error_message,
                processing_started_at=None,
            )
        )
        await self.session.flush()
        return result.rowcount > 0

    async def get_stalled(self, started_before: datetime, limit: int = 100) -> list[Video]:
        """Get videos stuck in ``processing`` since before a cutoff."""
        result = await self.session.execute(
            select(Video)
            .where(Video.status == VideoStatus.PROCESSING.value)
            .where(Video.processing_started_at < started_before)
            .order_by(Video.processing_started_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_stalled(self, video: Video, started_before: datetime, error_message: str) -> bool:
        """Mark a stalled video as ``error`` if it is still stalled.

        The conditional update skips videos whose job finished or restarted
        between the query and this write. The session copy of ``video`` is
        not refreshed.

        Returns:
            True if the video was marked
        """
        result = await self.session.execute(
            update(Video)
            .where(Video.id == video.id)
            .where(Video.status == VideoStatus.PROCESSING.value)
            .where(Video.processing_started_at < started_before)
            .values(
                status=VideoStatus.ERROR.value,
                error_message=error_message,
                processing_started_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.flush()
        return result.rowcount > 0

    async def delete(self, video: Video) -> None:
        await self.session.delete(video)
        await self.session.flush()
