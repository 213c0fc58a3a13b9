"""Transcoding API router.

Pub/Sub push endpoints for storage and job events, plus a view of cleanup
failures awaiting reclaim. Push deliveries are acknowledged with 204 as soon
as the matching handler task is queued; malformed deliveries are logged and
acknowledged too, since redelivering them cannot succeed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from edustream.core.config import settings
from edustream.core.database import get_db
from edustream.core.logging import log_info, log_warning
from edustream.modules.transcoding.repository import StorageCleanupFailureRepository
from edustream.modules.transcoding.schemas import (
    CleanupFailureResponse,
    PubSubPushEnvelope,
    StorageObjectEvent,
)
from edustream.modules.transcoding.tasks import (
    handle_job_notification_task,
    handle_object_finalized_task,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transcoding", tags=["transcoding"])

OBJECT_FINALIZE = "OBJECT_FINALIZE"


def verify_push_token(token: Optional[str] = None) -> None:
    """Reject pushes without the shared token when one is configured."""
    expected = settings.PUSH_VERIFICATION_TOKEN
    if expected and token != expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid push token")


async def read_envelope(request: Request) -> Optional[PubSubPushEnvelope]:
    try:
        return PubSubPushEnvelope.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        log_warning(logger, "Malformed push delivery", path=request.url.path, error=str(e))
        return None


@router.post(
    "/events/storage",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_push_token)],
)
async def receive_storage_event(request: Request):
    """Receive a Cloud Storage notification and queue the upload trigger."""
    envelope = await read_envelope(request)
    if envelope is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    message = envelope.message
    event_type = message.attributes.get("eventType")
    if event_type and event_type != OBJECT_FINALIZE:
        log_info(logger, "Ignoring storage event", event_type=event_type, message_id=message.message_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    try:
        event = StorageObjectEvent.model_validate(message.decode_json())
    except (ValueError, ValidationError) as e:
        log_warning(logger, "Malformed storage event", message_id=message.message_id, error=str(e))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    handle_object_finalized_task.delay(event.model_dump(by_alias=True), message.message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/events/jobs",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(verify_push_token)],
)
async def receive_job_event(request: Request):
    """Receive a Transcoder API lifecycle message and queue the completion listener."""
    envelope = await read_envelope(request)
    if envelope is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    message = envelope.message
    handle_job_notification_task.delay(message.data, message.message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/cleanup-failures", response_model=list[CleanupFailureResponse])
async def list_cleanup_failures(
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """List transcoded folders that could not be deleted and are not yet reclaimed."""
    repo = StorageCleanupFailureRepository(db)
    return await repo.list_unreclaimed(limit=limit)
