"""Rendition names and dimensions for the transcoding ladder."""

from enum import Enum


class Resolution(str, Enum):
    """Rendition names produced by the transcoder, ascending."""
    RES_144P = "144p"
    RES_240P = "240p"
    RES_360P = "360p"
    RES_480P = "480p"
    RES_720P = "720p"
    RES_1080P = "1080p"
    RES_1440P = "1440p"
    RES_4K = "4k"


# Resolution dimensions mapping (width, height)
RESOLUTION_DIMENSIONS = {
    Resolution.RES_144P: (256, 144),
    Resolution.RES_240P: (426, 240),
    Resolution.RES_360P: (640, 360),
    Resolution.RES_480P: (854, 480),
    Resolution.RES_720P: (1280, 720),
    Resolution.RES_1080P: (1920, 1080),
    Resolution.RES_1440P: (2560, 1440),
    Resolution.RES_4K: (3840, 2160),
}


class JobKind(str, Enum):
    """Kind of transcoding job carried on the queue."""
    TRANSCODE = "transcode"
    RETRANSCODE = "retranscode"
