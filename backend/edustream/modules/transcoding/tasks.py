"""Celery tasks for the transcoding pipeline.

Each task runs one handler in its own database session. Messages are acked
before the handler runs, so a worker lost mid-submission does not replay the
submission. Handlers settle their own failures and return a result dict; the
only retry is a completion notification that arrived before its job name was
stored.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

from celery import Task

from edustream.core.celery_app import celery_app
from edustream.core.config import settings
from edustream.core.database import async_session_maker, engine
from edustream.core.logging import log_context, log_error
from edustream.core.storage import get_storage
from edustream.modules.content.schemas import ContentSnapshot
from edustream.modules.transcoding.client import TranscoderClient
from edustream.modules.transcoding.schemas import StorageObjectEvent
from edustream.modules.transcoding.service import TranscodingService

logger = logging.getLogger(__name__)


class TranscodingHandlerTask(Task):
    """Base task for pipeline handlers."""
    abstract = True
    max_retries = 0
    acks_late = False
    reject_on_worker_lost = False

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handlers settle their own errors; anything reaching here is a bug."""
        log_error(logger, "Transcoding handler task crashed", exception=exc, task_id=task_id, task_name=self.name)


def build_service(session) -> TranscodingService:
    return TranscodingService(session, transcoder=TranscoderClient(), storage=get_storage())


def run_handler(correlation_id: Optional[str], handler_name: str, handler) -> dict:
    """Run ``handler(service)`` on a fresh event loop and session."""

    async def runner() -> dict:
        try:
            async with async_session_maker() as session:
                return await handler(build_service(session))
        finally:
            # Pooled connections are bound to this loop
            await engine.dispose()

    with log_context(correlation_id, handler_name):
        return asyncio.run(runner())


@celery_app.task(bind=True, base=TranscodingHandlerTask)
def handle_object_finalized_task(
    self: TranscodingHandlerTask,
    event: dict[str, Any],
    message_id: Optional[str] = None,
) -> dict:
    """Upload trigger for an object-finalized storage event."""
    storage_event = StorageObjectEvent.model_validate(event)
    return run_handler(
        message_id,
        "upload_trigger",
        lambda service: service.handle_object_finalized(storage_event, message_id=message_id),
    )


@celery_app.task(bind=True, base=TranscodingHandlerTask)
def handle_content_updated_task(
    self: TranscodingHandlerTask,
    content_id: str,
    before: Optional[dict[str, Any]],
    after: dict[str, Any],
    event_id: Optional[str] = None,
) -> dict:
    """Manual trigger for a content update event."""
    before_snapshot = ContentSnapshot.model_validate(before) if before else None
    after_snapshot = ContentSnapshot.model_validate(after)
    return run_handler(
        event_id,
        "manual_trigger",
        lambda service: service.handle_content_updated(
            uuid.UUID(content_id), before_snapshot, after_snapshot, event_id=event_id
        ),
    )


@celery_app.task(bind=True, base=TranscodingHandlerTask)
def handle_job_notification_task(
    self: TranscodingHandlerTask,
    data: str,
    message_id: Optional[str] = None,
) -> dict:
    """Completion listener for a Transcoder API lifecycle message."""
    allow_defer = self.request.retries < settings.NOTIFICATION_MAX_DEFERRALS
    result = run_handler(
        message_id,
        "completion_listener",
        lambda service: service.handle_job_notification(data, message_id=message_id, allow_defer=allow_defer),
    )
    if result.get("action") == "deferred":
        raise self.retry(
            countdown=settings.NOTIFICATION_RETRY_DELAY_SECONDS,
            max_retries=settings.NOTIFICATION_MAX_DEFERRALS,
        )
    return result


@celery_app.task(bind=True, base=TranscodingHandlerTask)
def handle_content_deleted_task(
    self: TranscodingHandlerTask,
    snapshot: dict[str, Any],
    event_id: Optional[str] = None,
) -> dict:
    """Cleanup handler for a content delete event."""
    deleted = ContentSnapshot.model_validate(snapshot)
    return run_handler(event_id, "cleanup", lambda service: service.handle_content_deleted(deleted))


@celery_app.task(bind=True, base=TranscodingHandlerTask)
def reclaim_transcoded_storage_task(self: TranscodingHandlerTask, limit: int = 100) -> dict:
    """Retry prefix deletes that failed during cleanup."""
    return run_handler(None, "reclaim", lambda service: service.reclaim_cleanup_failures(limit=limit))
