"""Core module for configuration and utilities."""

from edustream.core.celery_app import celery_app
from edustream.core.config import settings
from edustream.core.database import Base, get_db

__all__ = [
    "celery_app",
    "settings",
    "Base",
    "get_db",
]
