"""Prometheus metrics for the transcoding pipeline.

Tracks job outcomes, job duration, in-flight jobs, stalled videos and
cleanup failures. Exposed by the API at ``/metrics``.
"""

import os

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    multiprocess,
)

REGISTRY = CollectorRegistry()

# Celery prefork workers and gunicorn both need the multiprocess collector
if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


APP_INFO = Info(
    "streamforge_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Transcoding Job Metrics
# ============================================
TRANSCODE_JOBS_TOTAL = Counter(
    "transcode_jobs_total",
    "Transcoding jobs by outcome (finished, error, skipped, discarded)",
    ["outcome"],
    registry=REGISTRY,
)

TRANSCODE_JOB_DURATION_SECONDS = Histogram(
    "transcode_job_duration_seconds",
    "Wall-clock duration of a transcoding job in seconds",
    ["outcome"],
    buckets=[5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0],
    registry=REGISTRY,
)

TRANSCODE_JOBS_IN_PROGRESS = Gauge(
    "transcode_jobs_in_progress",
    "Number of transcoding jobs currently executing",
    registry=REGISTRY,
)

TRANSCODE_JOBS_ENQUEUED_TOTAL = Counter(
    "transcode_jobs_enqueued_total",
    "Transcoding jobs enqueued by kind",
    ["kind"],
    registry=REGISTRY,
)

STALLED_VIDEOS_TOTAL = Counter(
    "stalled_videos_total",
    "Videos marked as error after exceeding the processing stall timeout",
    registry=REGISTRY,
)

CLEANUP_FAILURES_TOTAL = Counter(
    "cleanup_failures_total",
    "Best-effort filesystem cleanup failures by kind (file, directory)",
    ["kind"],
    registry=REGISTRY,
)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })
