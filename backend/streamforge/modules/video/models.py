"""Video model for the transcoding lifecycle.

A video is created in ``waiting`` on upload, moved to ``processing`` by a
worker, and ends in ``finished`` or ``error``. Edits that supply a new file
and explicit re-runs move it back to ``waiting``.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Float, Index, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from streamforge.core.database import Base, utcnow


class VideoStatus(str, Enum):
    """Processing status of a video."""

    WAITING = "waiting"
    PROCESSING = "processing"
    FINISHED = "finished"
    ERROR = "error"


class VideoVisibility(str, Enum):
    """Visibility setting for a video."""

    PUBLIC = "public"
    PRIVATE = "private"


# Allowed status transitions. A new file or a re-run moves a video back to
# waiting; error -> processing only happens on a queue retry.
VIDEO_STATUS_TRANSITIONS = {
    VideoStatus.WAITING: {VideoStatus.WAITING, VideoStatus.PROCESSING, VideoStatus.ERROR},
    VideoStatus.PROCESSING: {
        VideoStatus.WAITING,
        VideoStatus.PROCESSING,
        VideoStatus.FINISHED,
        VideoStatus.ERROR,
    },
    VideoStatus.FINISHED: {VideoStatus.WAITING},
    VideoStatus.ERROR: {VideoStatus.WAITING, VideoStatus.PROCESSING},
}


class InvalidStatusTransitionError(Exception):
    """Raised when a status write is not an allowed transition."""

    pass


def can_transition(current: VideoStatus, target: VideoStatus) -> bool:
    """Check whether a status transition is allowed."""
    return target in VIDEO_STATUS_TRANSITIONS.get(current, set())


class Video(Base):
    """Uploaded video and the state of its HLS package."""

    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )

    # Metadata (edited by the owner)
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="Untitled Video")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    visibility: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VideoVisibility.PRIVATE.value
    )

    # Files
    original_file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    unique_file_name: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True, index=True
    )
    source_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Processing state (written by workers)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VideoStatus.WAITING.value, index=True
    )
    available_resolutions: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    duration: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_videos_status_processing_started", "status", "processing_started_at"),
    )

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, status={self.status})>"

