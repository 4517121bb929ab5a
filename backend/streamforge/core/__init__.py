"""Core module for configuration and utilities."""

from streamforge.core.celery_app import celery_app
from streamforge.core.config import settings
from streamforge.core.database import Base, get_db

__all__ = [
    "celery_app",
    "settings",
    "Base",
    "get_db",
]
