"""Application modules.

This package contains all feature modules for the StreamForge pipeline:
- video: Video records and lifecycle operations (upload, edit, delete, re-run)
- job: Durable job queue and job tracking entries
- transcoding: Metadata probing, resolution ladder, FFmpeg commands, worker pipeline
"""
