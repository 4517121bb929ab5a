"""Celery application configuration."""

from celery import Celery

from streamforge.core.config import settings

celery_app = Celery(
    "streamforge",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.TASK_TIME_LIMIT_SECONDS,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=24 * 60 * 60,
    beat_schedule={
        "reap-stalled-videos": {
            "task": "streamforge.modules.transcoding.tasks.reap_stalled_videos_task",
            "schedule": float(settings.STALL_CHECK_INTERVAL_SECONDS),
        },
    },
)

celery_app.autodiscover_tasks(["streamforge.modules.transcoding"])
