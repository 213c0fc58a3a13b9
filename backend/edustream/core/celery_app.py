"""Celery application configuration."""

from celery import Celery

from edustream.core.config import settings

celery_app = Celery(
    "edustream",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.HANDLER_TIME_LIMIT_SECONDS,
    worker_prefetch_multiplier=1,
)

celery_app.autodiscover_tasks(["edustream.modules.transcoding"])
