"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "StreamForge API"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./streamforge.db"

    # Redis (Celery broker and result backend)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Storage locations
    UPLOADS_DIR: str = "./storage/uploads"
    OUTPUT_VIDEOS_DIR: str = "./storage/videos"

    # Upload validation
    SUPPORTED_VIDEO_EXTENSIONS: list[str] = [".mp4", ".mov", ".avi", ".mkv"]
    MAX_VIDEO_FILE_SIZE_BYTES: int = 500 * 1024 * 1024

    # Media tools
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    PROBE_TIMEOUT_SECONDS: float = 60.0
    TRANSCODE_TIMEOUT_SECONDS: float = 3 * 60 * 60

    # Encoding
    HLS_SEGMENT_DURATION: int = 4  # seconds
    KEYFRAME_INTERVAL_FRAMES: int = 48
    X264_PRESET: str = "medium"
    AUDIO_BITRATE: str = "128k"

    # Worker behaviour
    TASK_TIME_LIMIT_SECONDS: int = 4 * 60 * 60
    TRANSCODE_MAX_RETRIES: int = 0
    STALL_TIMEOUT_SECONDS: int = 5 * 60 * 60
    STALL_CHECK_INTERVAL_SECONDS: int = 300

    # "supersede" cancels the pending job of a video when an edit supplies a
    # new file; "reject" refuses the edit while a job is pending.
    JOB_CONFLICT_POLICY: str = "supersede"

    # Observability
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    OTLP_ENDPOINT: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
