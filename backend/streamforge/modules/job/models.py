"""Job tracking models.

A ``VideoJob`` links a queue job id to the video it transcodes. It exists
from enqueue until the job succeeds, and is what makes cancellation
durable: a worker that dequeues a job whose entry is gone discards it.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from streamforge.core.database import Base, utcnow
from streamforge.modules.transcoding.models import JobKind


class VideoJob(Base):
    """Tracking entry for a queued or running transcoding job."""

    __tablename__ = "video_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    # Opaque queue identifier, stored verbatim
    job_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    video_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobKind.TRANSCODE.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<VideoJob(job_id={self.job_id}, video_id={self.video_id}, kind={self.kind})>"
