"""Tests for the video lifecycle service."""

import os
import uuid

import pytest
from sqlalchemy import select

from streamforge.modules.job.repository import VideoJobRepository
from streamforge.modules.video.models import (
    InvalidStatusTransitionError,
    Video,
    VideoStatus,
    VideoVisibility,
    can_transition,
)
from streamforge.modules.video.repository import VideoRepository
from streamforge.modules.video.service import (
    InvalidFileError,
    InvalidVideoStateError,
    JobConflictError,
    VideoNotFoundError,
    VideoPipelineService,
    validate_video_file,
)


def _write_upload(storage, unique_name: str) -> str:
    path = storage.upload_path(unique_name)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(b"video")
    return path


async def _publish(session_maker, queue, storage, unique_name: str = "a.mp4"):
    async with session_maker() as session:
        video = await VideoPipelineService(session, queue, storage).publish(
            owner_id=uuid.uuid4(),
            source_path=_write_upload(storage, unique_name),
            original_file_name="clip.mp4",
            unique_file_name=unique_name,
        )
    return video.id


async def _set_status(session_maker, video_id, status: VideoStatus) -> None:
    async with session_maker() as session:
        video = await VideoRepository(session).get_by_id(video_id)
        video.status = status.value
        await session.commit()


async def _get_status(session_maker, video_id) -> str:
    async with session_maker() as session:
        return (await VideoRepository(session).get_by_id(video_id)).status


async def _jobs_for(session_maker, video_id):
    async with session_maker() as session:
        return await VideoJobRepository(session).get_for_video(video_id)


class TestStatusTransitions:
    """Tests for the video status state machine."""

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            (VideoStatus.WAITING, VideoStatus.PROCESSING, True),
            (VideoStatus.WAITING, VideoStatus.WAITING, True),
            (VideoStatus.PROCESSING, VideoStatus.FINISHED, True),
            (VideoStatus.PROCESSING, VideoStatus.ERROR, True),
            (VideoStatus.PROCESSING, VideoStatus.WAITING, True),
            (VideoStatus.FINISHED, VideoStatus.WAITING, True),
            (VideoStatus.ERROR, VideoStatus.WAITING, True),
            (VideoStatus.ERROR, VideoStatus.PROCESSING, True),
            (VideoStatus.WAITING, VideoStatus.FINISHED, False),
            (VideoStatus.FINISHED, VideoStatus.PROCESSING, False),
            (VideoStatus.ERROR, VideoStatus.FINISHED, False),
        ],
    )
    def test_transitions(self, current, target, allowed: bool) -> None:
        assert can_transition(current, target) is allowed

    @pytest.mark.asyncio
    async def test_repository_rejects_finishing_waiting_video(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)

        async with session_maker() as session:
            repo = VideoRepository(session)
            video = await repo.get_by_id(video_id)
            with pytest.raises(InvalidStatusTransitionError, match="waiting to finished"):
                await repo.mark_finished(video, ["144p"], 1.0, "a.mp4")

    @pytest.mark.asyncio
    async def test_repository_rejects_processing_finished_video(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        await _set_status(session_maker, video_id, VideoStatus.FINISHED)

        async with session_maker() as session:
            repo = VideoRepository(session)
            video = await repo.get_by_id(video_id)
            with pytest.raises(InvalidStatusTransitionError):
                await repo.mark_processing(video)
        assert (await _get_status(session_maker, video_id)) == VideoStatus.FINISHED.value

    @pytest.mark.asyncio
    async def test_edit_of_processing_video_moves_it_back_to_waiting(
        self, session_maker, queue, storage
    ) -> None:
        video_id = await _publish(session_maker, queue, storage)
        async with session_maker() as session:
            repo = VideoRepository(session)
            await repo.mark_processing(await repo.get_by_id(video_id))
            await session.commit()

        async with session_maker() as session:
            await VideoPipelineService(session, queue, storage).edit_video(
                video_id, new_source_path=_write_upload(storage, "b.mp4")
            )

        assert (await _get_status(session_maker, video_id)) == VideoStatus.WAITING.value


class TestValidateVideoFile:
    """Tests for upload validation."""

    def test_accepts_supported_extension(self) -> None:
        validate_video_file("clip.MP4", 1024)

    def test_rejects_unsupported_extension(self) -> None:
        with pytest.raises(InvalidFileError, match="Invalid file extension"):
            validate_video_file("notes.txt", 1024)

    def test_rejects_empty_file(self) -> None:
        with pytest.raises(InvalidFileError, match="greater than 0"):
            validate_video_file("clip.mp4", 0)

    def test_rejects_oversized_file(self) -> None:
        with pytest.raises(InvalidFileError, match="exceeds maximum"):
            validate_video_file("clip.mp4", 10 * 1024 * 1024 * 1024)


class TestPublish:
    """Tests for VideoPipelineService.publish."""

    @pytest.mark.asyncio
    async def test_publish_creates_waiting_video_and_tracked_job(
        self, session_maker, queue, storage
    ) -> None:
        video_id = await _publish(session_maker, queue, storage)

        async with session_maker() as session:
            video = await VideoRepository(session).get_by_id(video_id)
        assert video.status == VideoStatus.WAITING.value
        assert video.title == "Untitled Video"
        assert video.visibility == VideoVisibility.PRIVATE.value
        assert video.available_resolutions == []

        job_id, descriptor = queue.last
        assert descriptor.kind == "transcode"
        assert descriptor.video_id == video_id
        assert descriptor.output_dir == storage.output_dir("a.mp4")
        assert [job.job_id for job in await _jobs_for(session_maker, video_id)] == [job_id]

    @pytest.mark.asyncio
    async def test_enqueue_failure_marks_video_error(self, session_maker, queue, storage) -> None:
        def broken_enqueue(descriptor, job_id=None):
            raise ConnectionError("broker unavailable")

        queue.enqueue = broken_enqueue
        async with session_maker() as session:
            service = VideoPipelineService(session, queue, storage)
            with pytest.raises(ConnectionError):
                await service.publish(
                    owner_id=uuid.uuid4(),
                    source_path=_write_upload(storage, "a.mp4"),
                    original_file_name="clip.mp4",
                    unique_file_name="a.mp4",
                )

        async with session_maker() as session:
            result = await session.execute(select(Video))
            video = result.scalar_one()
        assert video.status == VideoStatus.ERROR.value
        assert "broker unavailable" in video.error_message
        assert await _jobs_for(session_maker, video.id) == []


class TestEditVideo:
    """Tests for VideoPipelineService.edit_video."""

    @pytest.mark.asyncio
    async def test_metadata_only_edit_does_not_enqueue(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        enqueued = len(queue.enqueued)

        async with session_maker() as session:
            video = await VideoPipelineService(session, queue, storage).edit_video(
                video_id, title="New title", visibility=VideoVisibility.PUBLIC
            )

        assert video.title == "New title"
        assert video.visibility == VideoVisibility.PUBLIC.value
        assert len(queue.enqueued) == enqueued
        assert queue.removed == []

    @pytest.mark.asyncio
    async def test_supersede_policy_replaces_pending_job(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        old_job_id, old_descriptor = queue.last

        async with session_maker() as session:
            await VideoPipelineService(session, queue, storage, conflict_policy="supersede").edit_video(
                video_id,
                new_source_path=_write_upload(storage, "b.mp4"),
                new_original_file_name="new.mp4",
                new_unique_file_name="b.mp4",
            )

        new_job_id, new_descriptor = queue.last
        assert queue.removed == [old_job_id]
        assert [job.job_id for job in await _jobs_for(session_maker, video_id)] == [new_job_id]
        assert new_descriptor.kind == "retranscode"
        assert new_descriptor.replacement_original_name == "new.mp4"
        # The cancelled job never started, so its upload is removed now
        assert not os.path.exists(old_descriptor.source_path)

    @pytest.mark.asyncio
    async def test_reject_policy_refuses_edit_while_pending(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        old_job_id, _ = queue.last

        async with session_maker() as session:
            service = VideoPipelineService(session, queue, storage, conflict_policy="reject")
            with pytest.raises(JobConflictError):
                await service.edit_video(
                    video_id,
                    new_source_path=_write_upload(storage, "b.mp4"),
                    new_unique_file_name="b.mp4",
                )

        assert queue.removed == []
        assert [job.job_id for job in await _jobs_for(session_maker, video_id)] == [old_job_id]

    @pytest.mark.asyncio
    async def test_reject_policy_allows_edit_after_failure(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        await _set_status(session_maker, video_id, VideoStatus.ERROR)

        async with session_maker() as session:
            video = await VideoPipelineService(session, queue, storage, conflict_policy="reject").edit_video(
                video_id,
                new_source_path=_write_upload(storage, "b.mp4"),
                new_unique_file_name="b.mp4",
            )

        assert video.status == VideoStatus.WAITING.value
        assert len(await _jobs_for(session_maker, video_id)) == 1

    def test_unknown_policy_rejected(self, queue, storage) -> None:
        with pytest.raises(ValueError):
            VideoPipelineService(None, queue, storage, conflict_policy="ignore")

    @pytest.mark.asyncio
    async def test_edit_missing_video(self, session_maker, queue, storage) -> None:
        async with session_maker() as session:
            with pytest.raises(VideoNotFoundError):
                await VideoPipelineService(session, queue, storage).edit_video(uuid.uuid4(), title="x")


class TestRerun:
    """Tests for VideoPipelineService.rerun."""

    @pytest.mark.asyncio
    async def test_rerun_errored_video(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        stale_job_id, _ = queue.last
        await _set_status(session_maker, video_id, VideoStatus.ERROR)

        async with session_maker() as session:
            video = await VideoPipelineService(session, queue, storage).rerun(video_id)

        new_job_id, descriptor = queue.last
        assert video.status == VideoStatus.WAITING.value
        assert descriptor.kind == "transcode"
        assert descriptor.output_dir == storage.output_dir("a.mp4")
        assert new_job_id != stale_job_id
        assert [job.job_id for job in await _jobs_for(session_maker, video_id)] == [new_job_id]

    @pytest.mark.asyncio
    async def test_rerun_requires_error_status(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)

        async with session_maker() as session:
            with pytest.raises(InvalidVideoStateError):
                await VideoPipelineService(session, queue, storage).rerun(video_id)

    @pytest.mark.asyncio
    async def test_rerun_requires_source_file(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        await _set_status(session_maker, video_id, VideoStatus.ERROR)
        os.remove(storage.upload_path("a.mp4"))

        async with session_maker() as session:
            with pytest.raises(InvalidVideoStateError, match="no longer available"):
                await VideoPipelineService(session, queue, storage).rerun(video_id)


class TestDeleteVideo:
    """Tests for VideoPipelineService.delete_video."""

    @pytest.mark.asyncio
    async def test_delete_removes_package_and_jobs(self, session_maker, queue, storage) -> None:
        video_id = await _publish(session_maker, queue, storage)
        job_id, _ = queue.last
        output_dir = storage.output_dir("a.mp4")
        os.makedirs(output_dir)

        async with session_maker() as session:
            await VideoPipelineService(session, queue, storage).delete_video(video_id)

        assert queue.removed == [job_id]
        assert await _jobs_for(session_maker, video_id) == []
        assert not os.path.exists(output_dir)
        assert not os.path.exists(storage.upload_path("a.mp4"))

    @pytest.mark.asyncio
    async def test_delete_missing_video(self, session_maker, queue, storage) -> None:
        async with session_maker() as session:
            with pytest.raises(VideoNotFoundError):
                await VideoPipelineService(session, queue, storage).delete_video(uuid.uuid4())
