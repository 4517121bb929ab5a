"""Job queue and job tracking for transcoding work."""

from streamforge.modules.job.models import VideoJob
from streamforge.modules.job.queue import CeleryJobQueue, JobQueue
from streamforge.modules.job.repository import VideoJobRepository
from streamforge.modules.job.tasks import RETRY_CONFIGS, BaseTaskWithRetry, RetryConfig

__all__ = [
    "VideoJob",
    "VideoJobRepository",
    "JobQueue",
    "CeleryJobQueue",
    "RetryConfig",
    "RETRY_CONFIGS",
    "BaseTaskWithRetry",
]
