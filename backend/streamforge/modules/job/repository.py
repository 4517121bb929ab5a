"""Repository for job tracking entries."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from streamforge.modules.job.models import VideoJob
from streamforge.modules.transcoding.models import JobKind


class VideoJobRepository:
    """Repository for VideoJob operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        job_id: str,
        video_id: uuid.UUID,
        kind: JobKind = JobKind.TRANSCODE,
    ) -> VideoJob:
        """Create a tracking entry for an enqueued job.

        Args:
            job_id: Queue job identifier
            video_id: Video the job transcodes
            kind: Job kind

        Returns:
            Created VideoJob
        """
        entry = VideoJob(job_id=job_id, video_id=video_id, kind=kind.value)
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_by_job_id(self, job_id: str) -> Optional[VideoJob]:
        result = await self.session.execute(
            select(VideoJob).where(VideoJob.job_id == job_id)
        )
        return result.scalar_one_or_none()

    async def get_for_video(self, video_id: uuid.UUID) -> list[VideoJob]:
        """Get every tracking entry of a video, oldest first."""
        result = await self.session.execute(
            select(VideoJob)
            .where(VideoJob.video_id == video_id)
            .order_by(VideoJob.created_at)
        )
        return list(result.scalars().all())

    async def exists(self, job_id: str) -> bool:
        result = await self.session.execute(
            select(VideoJob.id).where(VideoJob.job_id == job_id)
        )
        return result.scalar_one_or_none() is not None

    async def mark_started(self, entry: VideoJob) -> None:
        entry.started_at = datetime.now(timezone.utc)
        await self.session.flush()

    async def delete_by_job_id(self, job_id: str) -> bool:
        """Delete a tracking entry.

        Returns:
            True if an entry was deleted
        """
        result = await self.session.execute(
            delete(VideoJob).where(VideoJob.job_id == job_id)
        )
        await self.session.flush()
        return result.rowcount > 0

    async def delete_for_video(self, video_id: uuid.UUID) -> int:
        """Delete every tracking entry of a video.

        Returns:
            Number of entries deleted
        """
        result = await self.session.execute(
            delete(VideoJob).where(VideoJob.video_id == video_id)
        )
        await self.session.flush()
        return result.rowcount
