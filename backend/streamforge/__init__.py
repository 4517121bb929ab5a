"""StreamForge Backend Application.

Turns uploaded videos into adaptive-bitrate HLS packages and tracks each
video's processing lifecycle.

Modules:
    - core: Configuration, database, Celery, logging, metrics, tracing
    - modules.video: Video records and the upload/edit/delete lifecycle
    - modules.job: Job queue and job tracking entries
    - modules.transcoding: Probing, ladder selection, FFmpeg and the worker pipeline
"""

__version__ = "0.1.0"
