"""Errors raised by the transcoding pipeline.

Probe, selection, transcode and thumbnail errors raised inside a job are
written to the video's ``error_message`` before the job fails.
"""


class PipelineError(Exception):
    """Base error for a failed transcoding job."""
    pass


class ProbeError(PipelineError):
    """Source could not be probed (tool failure, bad output, no video stream)."""
    pass


class SelectionEmptyError(PipelineError):
    """Source is smaller than the smallest ladder rung."""
    pass


class TranscodeError(PipelineError):
    """FFmpeg HLS transcode exited unsuccessfully or timed out."""
    pass


class ThumbnailError(PipelineError):
    """FFmpeg thumbnail extraction exited unsuccessfully or timed out."""
    pass


class PersistenceError(PipelineError):
    """Video record missing or could not be written."""
    pass
