"""Video API router.

Upload, edit, delete and re-run endpoints. Authentication happens upstream;
the owner id arrives as a form field.
"""

import asyncio
import os
import uuid
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from streamforge.core.celery_app import celery_app
from streamforge.core.config import settings
from streamforge.core.database import get_db
from streamforge.core.storage import MediaStorage
from streamforge.modules.job.queue import CeleryJobQueue, JobQueue
from streamforge.modules.video.models import VideoVisibility
from streamforge.modules.video.schemas import (
    VideoMetadataUpdate,
    VideoPublishRequest,
    VideoResponse,
)
from streamforge.modules.video.service import (
    InvalidFileError,
    InvalidVideoStateError,
    JobConflictError,
    VideoNotFoundError,
    VideoPipelineService,
    validate_video_file,
)

router = APIRouter(prefix="/videos", tags=["videos"])


@lru_cache
def get_job_queue() -> JobQueue:
    return CeleryJobQueue(celery_app)


@lru_cache
def get_media_storage() -> MediaStorage:
    return MediaStorage.from_settings(settings)


def get_pipeline_service(
    db: AsyncSession = Depends(get_db),
    queue: JobQueue = Depends(get_job_queue),
    storage: MediaStorage = Depends(get_media_storage),
) -> VideoPipelineService:
    return VideoPipelineService(db, queue, storage)


async def _store_upload(file: UploadFile, storage: MediaStorage) -> tuple[str, str, str]:
    """Validate and store an uploaded file.

    The copy runs in the thread pool so large uploads do not block the loop.

    Returns:
        Tuple of (source path, original file name, unique file name)
    """
    original_name = os.path.basename(file.filename or "")
    validate_video_file(original_name, file.size or 0)
    unique_name = storage.generate_unique_name(original_name)
    loop = asyncio.get_event_loop()
    source_path = await loop.run_in_executor(None, storage.save_upload, file.file, unique_name)
    return source_path, original_name, unique_name


def _validation_error(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=e.errors(include_url=False),
    )


@router.post("", response_model=VideoResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_video(
    owner_id: uuid.UUID = Form(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    visibility: str = Form(VideoVisibility.PRIVATE.value),
    file: UploadFile = File(...),
    service: VideoPipelineService = Depends(get_pipeline_service),
):
    """Upload a video and enqueue its transcode."""
    try:
        request = VideoPublishRequest(
            owner_id=owner_id,
            title=title,
            description=description,
            visibility=visibility,
        )
    except ValidationError as e:
        raise _validation_error(e)

    try:
        source_path, original_name, unique_name = await _store_upload(file, service.storage)
    except InvalidFileError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    video = await service.publish(
        owner_id=request.owner_id,
        source_path=source_path,
        original_file_name=original_name,
        unique_file_name=unique_name,
        title=request.title,
        description=request.description,
        visibility=request.visibility,
    )
    return video


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: uuid.UUID,
    service: VideoPipelineService = Depends(get_pipeline_service),
):
    """Get a video and its processing status."""
    try:
        return await service.get_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/{video_id}", response_model=VideoResponse)
async def edit_video(
    video_id: uuid.UUID,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    visibility: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    service: VideoPipelineService = Depends(get_pipeline_service),
):
    """Edit video metadata, optionally replacing the video file."""
    try:
        update = VideoMetadataUpdate(title=title, description=description, visibility=visibility)
    except ValidationError as e:
        raise _validation_error(e)

    source_path = original_name = unique_name = None
    if file is not None:
        try:
            source_path, original_name, unique_name = await _store_upload(file, service.storage)
        except InvalidFileError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        return await service.edit_video(
            video_id,
            title=update.title,
            description=update.description,
            visibility=update.visibility,
            new_source_path=source_path,
            new_original_file_name=original_name,
            new_unique_file_name=unique_name,
        )
    except VideoNotFoundError as e:
        service.storage.remove_file(source_path, reason="edit rejected")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except JobConflictError as e:
        service.storage.remove_file(source_path, reason="edit rejected")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete("/{video_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    video_id: uuid.UUID,
    service: VideoPipelineService = Depends(get_pipeline_service),
):
    """Delete a video and cancel its pending work."""
    try:
        await service.delete_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{video_id}/rerun", response_model=VideoResponse, status_code=status.HTTP_202_ACCEPTED)
async def rerun_video(
    video_id: uuid.UUID,
    service: VideoPipelineService = Depends(get_pipeline_service),
):
    """Re-run processing of a video that ended in error."""
    try:
        return await service.rerun(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidVideoStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
