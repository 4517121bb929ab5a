"""Transcoding module for HLS packaging of uploaded videos.

Probes sources with ffprobe, selects renditions from the resolution ladder,
builds FFmpeg HLS commands and runs the worker pipeline that drives a
video's processing lifecycle.
"""
