"""Pydantic schemas for the video module."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from streamforge.modules.video.models import VideoVisibility

MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000


class VideoPublishRequest(BaseModel):
    """Metadata submitted with an upload."""

    owner_id: uuid.UUID
    title: Optional[str] = Field(None, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    visibility: VideoVisibility = VideoVisibility.PRIVATE

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class VideoMetadataUpdate(BaseModel):
    """Metadata fields of an edit. Omitted fields are left unchanged."""

    title: Optional[str] = Field(None, min_length=1, max_length=MAX_TITLE_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_DESCRIPTION_LENGTH)
    visibility: Optional[VideoVisibility] = None


class VideoResponse(BaseModel):
    """Response schema for a video and its processing state."""

    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str
    visibility: str
    original_file_name: str
    unique_file_name: str
    status: str
    available_resolutions: list[str]
    duration: float
    error_message: Optional[str]
    processing_started_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True
