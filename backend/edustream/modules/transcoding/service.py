"""Transcoding pipeline handlers.

Four independent handlers share the content record:

- ``handle_object_finalized``: submits a job for an opted-in video upload.
- ``handle_content_updated``: runs an operator re-transcode or cancel
  command when ``transcode_trigger`` changes to it.
- ``handle_job_notification``: applies a job's terminal state to the record.
- ``handle_content_deleted``: removes a deleted record's transcoded files.

No handler raises. Every failure is logged, reflected on the record where
the record has a field for it, and reported in the returned result dict.
"""

import asyncio
import base64
import json
import logging
import uuid
from typing import Any, Optional, Protocol, Union

from sqlalchemy.ext.asyncio import AsyncSession

from edustream.core.config import settings
from edustream.core.logging import log_error, log_info, log_warning
from edustream.core.metrics import (
    STORAGE_CLEANUPS,
    TRANSCODE_CANCELLATIONS,
    TRANSCODE_JOBS_SUBMITTED,
    TRANSCODE_NOTIFICATIONS,
    TRANSCODE_SUBMIT_FAILURES,
)
from edustream.core.storage import StorageBackend
from edustream.modules.content.models import Content, ContentType, TranscodeStatus, TranscodeTrigger
from edustream.modules.content.repository import ContentRepository
from edustream.modules.content.schemas import ContentSnapshot
from edustream.modules.transcoding.abr import build_job_spec
from edustream.modules.transcoding.client import TranscoderJob
from edustream.modules.transcoding.layout import StorageLayout, get_default_layout
from edustream.modules.transcoding.repository import (
    StorageCleanupFailureRepository,
    TranscodeCommandRepository,
)
from edustream.modules.transcoding.schemas import StorageObjectEvent, TranscoderJobEvent

logger = logging.getLogger(__name__)

UPLOAD_SUBMIT_ERROR = "Unknown error during job creation."
MANUAL_SUBMIT_ERROR = "Unknown error creating transcoding job."
JOB_FAILURE_ERROR = "Unknown transcoding failure."
CANCEL_ERROR = "Unknown cancellation error"
MISSING_PATH_ERROR = "Content has no storage path to transcode."

UPLOAD_COMMAND = "upload"

STATE_SUCCEEDED = "SUCCEEDED"
STATE_FAILED = "FAILED"


class JobService(Protocol):
    """What the handlers need from the transcoding job service."""

    is_configured: bool

    async def create_job(self, job_spec: dict) -> TranscoderJob: ...

    async def delete_job(self, job_name: str) -> None: ...


def is_transcode_requested(metadata: Optional[dict[str, Any]], key: str = "transcode") -> bool:
    """Check the upload-time opt-in flag.

    Object metadata values are strings, so only ``"true"`` (any case) or a
    literal True counts as a request.
    """
    if not metadata:
        return False
    value = metadata.get(key)
    if value is True:
        return True
    return isinstance(value, str) and value.strip().lower() == "true"


def trigger_became(
    before: Optional[ContentSnapshot],
    after: ContentSnapshot,
    trigger: TranscodeTrigger,
) -> bool:
    """True only when this update moved ``transcode_trigger`` to ``trigger``."""
    if after.transcode_trigger != trigger:
        return False
    return before is None or before.transcode_trigger != trigger


def awaiting_job_name(content: Content) -> bool:
    """True while a submission has marked the record but not stored its job."""
    return content.transcode_status == TranscodeStatus.PROCESSING.value and not content.transcode_job_name


def decode_job_notification(data: Union[str, bytes, dict]) -> TranscoderJobEvent:
    """Decode a Pub/Sub message payload into a job event.

    Raises:
        ValueError: If the payload is not base64 JSON of the expected shape
    """
    if isinstance(data, dict):
        return TranscoderJobEvent.model_validate(data)
    payload = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
    return TranscoderJobEvent.model_validate(payload)


class TranscodingService:
    """Runs the transcoding pipeline handlers against one database session."""

    def __init__(
        self,
        session: AsyncSession,
        transcoder: JobService,
        storage: StorageBackend,
        layout: Optional[StorageLayout] = None,
        content_repo: Optional[ContentRepository] = None,
        command_repo: Optional[TranscodeCommandRepository] = None,
        cleanup_repo: Optional[StorageCleanupFailureRepository] = None,
        pubsub_topic: Optional[str] = None,
        metadata_key: Optional[str] = None,
    ):
        self.session = session
        self.transcoder = transcoder
        self.storage = storage
        self.layout = layout or get_default_layout()
        self.content_repo = content_repo or ContentRepository(session)
        self.command_repo = command_repo or TranscodeCommandRepository(session)
        self.cleanup_repo = cleanup_repo or StorageCleanupFailureRepository(session)
        self.pubsub_topic = pubsub_topic if pubsub_topic is not None else settings.TRANSCODER_PUBSUB_TOPIC
        self.metadata_key = metadata_key or settings.TRANSCODE_METADATA_KEY

    def build_job_spec_for(self, path: str) -> dict:
        """Build the job request for a stored video path."""
        return build_job_spec(
            self.layout.input_uri_for(path),
            self.layout.output_uri_for(path),
            pubsub_topic=self.pubsub_topic,
            manifest_name=self.layout.manifest_name,
        )

    async def _submit_job(
        self,
        content_id: uuid.UUID,
        path: str,
        trigger: str,
        default_error: str,
        clear_trigger: bool = False,
    ) -> dict:
        """Mark the record processing, submit a job and store its name.

        Any failure lands the record in ``failed`` with the error text.
        """
        extra_fields = {"transcode_trigger": None} if clear_trigger else {}
        job_spec = self.build_job_spec_for(path)

        try:
            await self.content_repo.update_fields(
                content_id,
                transcode_status=TranscodeStatus.PROCESSING.value,
                error_message=None,
                cancel_requested=False,
                transcode_job_name=None,
                **extra_fields,
            )
            await self.session.commit()

            job = await self.transcoder.create_job(job_spec)

            await self.content_repo.update_fields(content_id, transcode_job_name=job.name)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            error_message = str(e) or default_error
            log_error(
                logger,
                "Transcoding job creation failed",
                exception=e,
                content_id=str(content_id),
                content_path=path,
                trigger=trigger,
            )
            TRANSCODE_SUBMIT_FAILURES.labels(trigger=trigger).inc()

            await self.content_repo.update_fields(
                content_id,
                transcode_status=TranscodeStatus.FAILED.value,
                error_message=error_message,
                **extra_fields,
            )
            await self.session.commit()
            return {"action": "failed", "content_id": str(content_id), "error": error_message}

        TRANSCODE_JOBS_SUBMITTED.labels(trigger=trigger).inc()
        log_info(
            logger,
            "Transcoding job created",
            content_id=str(content_id),
            content_path=path,
            job_name=job.name,
            trigger=trigger,
        )
        return {"action": "submitted", "content_id": str(content_id), "job_name": job.name}

    # ============================================
    # Upload trigger
    # ============================================

    async def handle_object_finalized(
        self,
        event: StorageObjectEvent,
        message_id: Optional[str] = None,
    ) -> dict:
        """Submit a job for a finalized upload that asked for transcoding.

        With a ``message_id`` the upload is claimed in the command ledger
        first, so a redelivered storage event does not submit a second job.
        """
        path = event.name

        if not self.transcoder.is_configured:
            log_error(logger, "Transcoder project number is not set", object_name=path)
            return {"action": "skipped", "reason": "not_configured"}

        if not self.layout.is_video_intake_path(path):
            log_info(logger, "Not a video, skipping", object_name=path)
            return {"action": "skipped", "reason": "not_video"}

        if not is_transcode_requested(event.metadata, self.metadata_key):
            log_info(logger, "Transcoding not requested on upload, skipping", object_name=path)
            return {"action": "skipped", "reason": "not_requested"}

        content = await self.content_repo.find_by_path(path)
        if content is None:
            log_error(logger, "No content record found for video path", object_name=path)
            return {"action": "skipped", "reason": "record_not_found"}

        content_id = content.id
        command_id = None
        if message_id:
            event_id = f"{UPLOAD_COMMAND}:{message_id}"
            claimed = await self.command_repo.claim(content_id, UPLOAD_COMMAND, event_id)
            if claimed is None:
                return await self._duplicate(content_id, UPLOAD_COMMAND, event_id)
            command_id = claimed.id

        result = await self._submit_job(
            content_id,
            path,
            trigger=UPLOAD_COMMAND,
            default_error=UPLOAD_SUBMIT_ERROR,
        )

        if command_id is not None:
            await self.command_repo.mark_consumed(command_id, result["action"])
            await self.session.commit()
        return result

    async def _duplicate(self, content_id: uuid.UUID, command: str, event_id: str) -> dict:
        existing = await self.command_repo.get_by_event_id(event_id)
        previous = existing.outcome if existing is not None else None
        log_info(
            logger,
            "Command already handled for this event",
            content_id=str(content_id),
            command=command,
            event_id=event_id,
            previous_outcome=previous,
        )
        return {
            "action": "duplicate",
            "content_id": str(content_id),
            "event_id": event_id,
            "previous_outcome": previous,
        }

    # ============================================
    # Manual trigger
    # ============================================

    async def handle_content_updated(
        self,
        content_id: uuid.UUID,
        before: Optional[ContentSnapshot],
        after: ContentSnapshot,
        event_id: Optional[str] = None,
    ) -> dict:
        """Run the operator command this update introduced, if any.

        The command is claimed in the ledger under ``event_id`` first, so a
        redelivered update event is a no-op.
        """
        if trigger_became(before, after, TranscodeTrigger.MANUAL):
            command = TranscodeTrigger.MANUAL
        elif trigger_became(before, after, TranscodeTrigger.CANCEL):
            command = TranscodeTrigger.CANCEL
        else:
            return {"action": "ignored", "content_id": str(content_id)}

        event_id = event_id or str(uuid.uuid4())
        claimed = await self.command_repo.claim(content_id, command.value, event_id)
        if claimed is None:
            return await self._duplicate(content_id, command.value, event_id)
        command_id = claimed.id

        log_info(logger, "Transcode command received", content_id=str(content_id), command=command.value)
        if command == TranscodeTrigger.MANUAL:
            result = await self._retranscode(content_id, after)
        else:
            result = await self._cancel(content_id, after)

        await self.command_repo.mark_consumed(command_id, result["action"])
        await self.session.commit()
        return result

    async def _retranscode(self, content_id: uuid.UUID, after: ContentSnapshot) -> dict:
        if not after.path:
            log_error(logger, "Manual transcode requested for content without a path", content_id=str(content_id))
            TRANSCODE_SUBMIT_FAILURES.labels(trigger="manual").inc()
            await self.content_repo.update_fields(
                content_id,
                transcode_status=TranscodeStatus.FAILED.value,
                error_message=MISSING_PATH_ERROR,
                transcode_trigger=None,
            )
            await self.session.commit()
            return {"action": "failed", "content_id": str(content_id), "error": MISSING_PATH_ERROR}

        return await self._submit_job(
            content_id,
            after.path,
            trigger="manual",
            default_error=MANUAL_SUBMIT_ERROR,
            clear_trigger=True,
        )

    async def _cancel(self, content_id: uuid.UUID, after: ContentSnapshot) -> dict:
        job_name = after.transcode_job_name
        if not job_name:
            log_warning(
                logger,
                "Cancellation requested but no transcode job name is present",
                content_id=str(content_id),
            )
            await self.content_repo.update_fields(content_id, transcode_trigger=None)
            await self.session.commit()
            return {"action": "no_job", "content_id": str(content_id)}

        cancel_error = None
        try:
            log_info(logger, "Attempting to cancel job", content_id=str(content_id), job_name=job_name)
            await self.transcoder.delete_job(job_name)
            TRANSCODE_CANCELLATIONS.labels(outcome="deleted").inc()
        except Exception as e:
            cancel_error = str(e) or CANCEL_ERROR
            TRANSCODE_CANCELLATIONS.labels(outcome="error").inc()
            log_error(
                logger,
                "Failed to cancel job",
                exception=e,
                content_id=str(content_id),
                job_name=job_name,
            )

        # The record reads cancelled whether or not the job service stopped the job
        await self.content_repo.update_fields(
            content_id,
            transcode_status=TranscodeStatus.CANCELLED.value,
            transcode_trigger=None,
            error_message=None,
            cancel_requested=True,
        )
        await self.session.commit()
        log_info(logger, "Content marked cancelled", content_id=str(content_id), job_name=job_name)

        result = {"action": "cancelled", "content_id": str(content_id), "job_name": job_name}
        if cancel_error is not None:
            result["cancel_error"] = cancel_error
        return result

    # ============================================
    # Completion listener
    # ============================================

    async def handle_job_notification(
        self,
        data: Union[str, bytes, dict],
        message_id: Optional[str] = None,
        allow_defer: bool = True,
    ) -> dict:
        """Apply a job lifecycle notification. Malformed messages are dropped.

        A notification can arrive before its submission stored the job name.
        While the record is ``processing`` with no job name it is deferred
        for redelivery; once ``allow_defer`` is False it is applied by path.
        """
        try:
            event = decode_job_notification(data)
            return await self._apply_job_event(event, allow_defer=allow_defer)
        except Exception as e:
            await self.session.rollback()
            TRANSCODE_NOTIFICATIONS.labels(state="unknown", outcome="error").inc()
            log_error(
                logger,
                "Error processing transcode notification",
                exception=e,
                message_id=message_id,
            )
            return {"action": "dropped", "message_id": message_id, "error": str(e)}

    async def _apply_job_event(self, event: TranscoderJobEvent, allow_defer: bool = True) -> dict:
        job = event.job
        state = (job.state or "").upper()

        if state == STATE_SUCCEEDED and job.output_uri:
            fields = {
                "transcode_status": TranscodeStatus.SUCCEEDED.value,
                "hls_url": self.layout.manifest_uri(job.output_uri),
            }
        elif state == STATE_FAILED:
            error_message = (job.error.message if job.error else None) or JOB_FAILURE_ERROR
            fields = {
                "transcode_status": TranscodeStatus.FAILED.value,
                "error_message": error_message,
            }
        else:
            TRANSCODE_NOTIFICATIONS.labels(state=state or "unknown", outcome="ignored").inc()
            log_info(logger, "Ignoring job notification", job_name=job.name, state=state)
            return {"action": "ignored", "state": state}

        path = self.layout.path_from_input_uri(job.input_uri)
        content = await self.content_repo.find_by_path(path)
        if content is None:
            TRANSCODE_NOTIFICATIONS.labels(state=state, outcome="not_found").inc()
            log_warning(
                logger,
                "No content record found for transcoded video",
                content_path=path,
                job_name=job.name,
                state=state,
            )
            return {"action": "record_not_found", "content_path": path, "state": state}

        match_job = bool(job.name)
        if job.name and job.name != content.transcode_job_name:
            if not awaiting_job_name(content):
                return self._discard_stale(content.id, job.name, content.transcode_job_name, state)
            if allow_defer:
                TRANSCODE_NOTIFICATIONS.labels(state=state, outcome="deferred").inc()
                log_info(
                    logger,
                    "Job name not stored yet, deferring notification",
                    content_id=str(content.id),
                    job_name=job.name,
                    state=state,
                )
                return {"action": "deferred", "content_id": str(content.id), "job_name": job.name, "state": state}

            log_warning(
                logger,
                "Job name was never stored, applying notification by path",
                content_id=str(content.id),
                job_name=job.name,
                state=state,
            )
            fields["transcode_job_name"] = job.name
            match_job = False

        if content.cancel_requested:
            TRANSCODE_NOTIFICATIONS.labels(state=state, outcome="cancelled").inc()
            log_info(
                logger,
                "Ignoring notification for cancelled content",
                content_id=str(content.id),
                job_name=job.name,
                state=state,
            )
            return {"action": "ignored_cancelled", "content_id": str(content.id), "state": state}

        if match_job:
            updated = await self.content_repo.update_if_job_matches(content.id, job.name, **fields)
        else:
            updated = await self.content_repo.update_fields(content.id, **fields)
        await self.session.commit()

        if not updated:
            return self._discard_stale(content.id, job.name, None, state)

        TRANSCODE_NOTIFICATIONS.labels(state=state, outcome="applied").inc()
        if state == STATE_SUCCEEDED:
            log_info(logger, "Transcoding succeeded", content_id=str(content.id), content_path=path, job_name=job.name)
        else:
            log_error(
                logger,
                "Transcoding failed",
                content_id=str(content.id),
                content_path=path,
                job_name=job.name,
                error_message=fields["error_message"],
            )

        result = {"action": state.lower(), "content_id": str(content.id), "state": state}
        result.update(fields)
        return result

    def _discard_stale(
        self,
        content_id: uuid.UUID,
        job_name: Optional[str],
        current_job_name: Optional[str],
        state: str,
    ) -> dict:
        TRANSCODE_NOTIFICATIONS.labels(state=state, outcome="stale").inc()
        log_warning(
            logger,
            "Discarding stale job notification",
            content_id=str(content_id),
            job_name=job_name,
            current_job_name=current_job_name,
            state=state,
        )
        return {"action": "stale", "content_id": str(content_id), "job_name": job_name, "state": state}

    # ============================================
    # Cleanup
    # ============================================

    async def handle_content_deleted(self, snapshot: ContentSnapshot) -> dict:
        """Delete every transcoded artifact of a deleted video record.

        A failed delete is logged and parked in the cleanup-failure list.
        """
        if snapshot.type != ContentType.VIDEO or not snapshot.path:
            return {"action": "skipped", "content_id": str(snapshot.id)}

        prefix = self.layout.output_prefix_for(snapshot.path)
        try:
            deleted = await asyncio.to_thread(self.storage.delete_prefix, prefix)
        except Exception as e:
            error_message = str(e) or "Unknown error deleting transcoded files."
            STORAGE_CLEANUPS.labels(outcome="error").inc()
            log_error(
                logger,
                "Failed to delete transcoded files",
                exception=e,
                content_id=str(snapshot.id),
                content_path=snapshot.path,
                prefix=prefix,
            )
            await self._record_cleanup_failure(snapshot, prefix, error_message)
            return {
                "action": "cleanup_failed",
                "content_id": str(snapshot.id),
                "prefix": prefix,
                "error": error_message,
            }

        STORAGE_CLEANUPS.labels(outcome="deleted").inc()
        log_info(
            logger,
            "Deleted transcoded folder",
            content_id=str(snapshot.id),
            prefix=prefix,
            deleted=deleted,
        )
        return {"action": "cleaned", "content_id": str(snapshot.id), "prefix": prefix, "deleted": deleted}

    async def _record_cleanup_failure(
        self,
        snapshot: ContentSnapshot,
        prefix: str,
        error_message: str,
    ) -> None:
        try:
            await self.cleanup_repo.record(snapshot.id, snapshot.path, prefix, error_message)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            log_error(
                logger,
                "Could not record cleanup failure",
                exception=e,
                content_id=str(snapshot.id),
                prefix=prefix,
            )

    async def reclaim_cleanup_failures(self, limit: int = 100) -> dict:
        """Retry the prefix delete for every unreclaimed cleanup failure."""
        failures = await self.cleanup_repo.list_unreclaimed(limit=limit)
        reclaimed = 0
        still_failing = 0

        for failure in failures:
            try:
                await asyncio.to_thread(self.storage.delete_prefix, failure.prefix)
            except Exception as e:
                still_failing += 1
                STORAGE_CLEANUPS.labels(outcome="error").inc()
                log_warning(
                    logger,
                    "Reclaim of transcoded files failed",
                    content_id=str(failure.content_id),
                    prefix=failure.prefix,
                    error=str(e),
                )
                await self.cleanup_repo.record_attempt(failure, str(e))
            else:
                reclaimed += 1
                STORAGE_CLEANUPS.labels(outcome="reclaimed").inc()
                await self.cleanup_repo.mark_reclaimed(failure)

        await self.session.commit()
        log_info(logger, "Reclaim pass finished", reclaimed=reclaimed, failed=still_failing)
        return {"action": "reclaimed", "reclaimed": reclaimed, "failed": still_failing}
