"""Durable job queue for transcoding jobs.

Jobs are Celery tasks on the Redis broker. Job ids are the Celery task ids
and are generated before enqueueing, so the tracking entry can be committed
before any worker can pick the job up.
"""

import logging
import uuid
from typing import Optional, Protocol, Union

from celery import Celery

from streamforge.core.logging import log_info
from streamforge.core.metrics import TRANSCODE_JOBS_ENQUEUED_TOTAL
from streamforge.modules.transcoding.schemas import (
    RetranscodeJobDescriptor,
    TranscodeJobDescriptor,
    dump_job_descriptor,
)

logger = logging.getLogger(__name__)

PROCESS_VIDEO_TASK_NAME = "streamforge.modules.transcoding.tasks.process_video_task"
TRANSCODE_QUEUE_NAME = "transcode"

Descriptor = Union[TranscodeJobDescriptor, RetranscodeJobDescriptor]


def new_job_id() -> str:
    return str(uuid.uuid4())


class JobQueue(Protocol):
    """Queue of transcoding jobs addressable by job id."""

    def enqueue(self, descriptor: Descriptor, job_id: Optional[str] = None) -> str:
        """Enqueue a job and return its id, generating one if not given."""
        ...

    def remove(self, job_id: str) -> None:
        """Cancel a job that has not started. No-op if running or absent."""
        ...


class CeleryJobQueue:
    """JobQueue backed by Celery.

    ``remove`` revokes the task without terminating it. A running job is
    never interrupted; it finds its tracking entry gone when it completes
    and discards its output.
    """

    def __init__(self, app: Celery, queue_name: str = TRANSCODE_QUEUE_NAME):
        self.app = app
        self.queue_name = queue_name

    def enqueue(self, descriptor: Descriptor, job_id: Optional[str] = None) -> str:
        job_id = job_id or new_job_id()
        self.app.send_task(
            PROCESS_VIDEO_TASK_NAME,
            kwargs={"descriptor": dump_job_descriptor(descriptor)},
            task_id=job_id,
            queue=self.queue_name,
        )
        TRANSCODE_JOBS_ENQUEUED_TOTAL.labels(kind=descriptor.kind).inc()
        log_info(
            logger,
            "Enqueued transcoding job",
            job_id=job_id,
            video_id=str(descriptor.video_id),
            kind=descriptor.kind,
        )
        return job_id

    def remove(self, job_id: str) -> None:
        self.app.control.revoke(job_id, terminate=False)
        log_info(logger, "Revoked transcoding job", job_id=job_id)
