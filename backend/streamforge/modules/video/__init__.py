"""Video module: video records and their processing lifecycle."""

from streamforge.modules.video.models import Video, VideoStatus, VideoVisibility
from streamforge.modules.video.repository import VideoRepository

__all__ = [
    "Video",
    "VideoStatus",
    "VideoVisibility",
    "VideoRepository",
]
