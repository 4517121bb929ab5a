"""Celery tasks for the transcoding worker.

Run a worker with:

    celery -A streamforge.core.celery_app worker -Q transcode,celery --concurrency=2

and the stall reaper schedule with ``celery -A streamforge.core.celery_app beat``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from celery.signals import worker_process_init

from streamforge.core.celery_app import celery_app
from streamforge.core.config import settings
from streamforge.core.database import create_session_maker
from streamforge.core.logging import log_info, setup_logging
from streamforge.core.storage import MediaStorage
from streamforge.core.tracing import setup_tracing
from streamforge.modules.job.queue import PROCESS_VIDEO_TASK_NAME
from streamforge.modules.job.tasks import BaseTaskWithRetry
from streamforge.modules.transcoding.exceptions import PersistenceError, PipelineError
from streamforge.modules.transcoding.ffmpeg import FFmpegTranscoder
from streamforge.modules.transcoding.pipeline import VideoProcessor, reap_stalled_videos
from streamforge.modules.transcoding.schemas import parse_job_descriptor

logger = logging.getLogger(__name__)


@dataclass
class WorkerContext:
    """Long-lived objects shared by every job a worker process runs."""
    processor: VideoProcessor


_worker_context: Optional[WorkerContext] = None


def get_worker_context() -> WorkerContext:
    """Get the worker context, building it on first use in this process."""
    global _worker_context
    if _worker_context is None:
        session_maker = create_session_maker(settings.DATABASE_URL, use_null_pool=True)
        _worker_context = WorkerContext(
            processor=VideoProcessor(
                session_maker=session_maker,
                transcoder=FFmpegTranscoder.from_settings(settings),
                storage=MediaStorage.from_settings(settings),
            )
        )
    return _worker_context


@worker_process_init.connect
def init_worker_process(**kwargs) -> None:
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
    setup_tracing(
        service_name=f"{settings.PROJECT_NAME} worker",
        service_version=settings.VERSION,
        environment=settings.ENVIRONMENT,
        otlp_endpoint=settings.OTLP_ENDPOINT,
    )
    get_worker_context()
    log_info(logger, "Transcoding worker process initialized")


class TranscodeTask(BaseTaskWithRetry):
    """Base task for transcoding jobs."""
    abstract = True
    retry_config_name = "transcode"


@celery_app.task(bind=True, base=TranscodeTask, name=PROCESS_VIDEO_TASK_NAME)
def process_video_task(self: TranscodeTask, descriptor: dict) -> dict:
    """Run one transcoding job.

    Args:
        descriptor: Serialized job descriptor

    Returns:
        dict: Job result
    """
    job = parse_job_descriptor(descriptor)
    attempt = self.request.retries + 1
    processor = get_worker_context().processor

    try:
        result = asyncio.run(
            processor.process(self.request.id, job, is_retry=self.request.retries > 0)
        )
    except PersistenceError:
        raise
    except PipelineError as e:
        self.retry_with_backoff(e, attempt)
        raise

    return result.to_dict()


@celery_app.task(name="streamforge.modules.transcoding.tasks.reap_stalled_videos_task")
def reap_stalled_videos_task() -> dict:
    """Mark videos stuck in processing as failed."""
    processor = get_worker_context().processor
    reaped = asyncio.run(
        reap_stalled_videos(processor.session_maker, settings.STALL_TIMEOUT_SECONDS)
    )
    return {"reaped": reaped}
