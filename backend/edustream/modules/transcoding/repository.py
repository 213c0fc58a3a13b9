"""Repository for transcoding pipeline database operations."""

import uuid
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from edustream.modules.content.models import utcnow
from edustream.modules.transcoding.models import (
    CommandStatus,
    StorageCleanupFailure,
    TranscodeCommand,
)


class TranscodeCommandRepository:
    """Repository for the operator command ledger."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def claim(
        self,
        content_id: uuid.UUID,
        command: str,
        event_id: str,
    ) -> Optional[TranscodeCommand]:
        """Record a command for an update event and commit it.

        Returns:
            TranscodeCommand if claimed, None if the event was already claimed
        """
        entry = TranscodeCommand(
            content_id=content_id,
            command=command,
            event_id=event_id,
            status=CommandStatus.PENDING.value,
        )
        self.session.add(entry)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return None
        return entry

    async def get_by_event_id(self, event_id: str) -> Optional[TranscodeCommand]:
        result = await self.session.execute(
            select(TranscodeCommand).where(TranscodeCommand.event_id == event_id)
        )
        return result.scalar_one_or_none()

    async def mark_consumed(self, command_id: uuid.UUID, outcome: str) -> None:
        """Mark a claimed command as consumed with the branch outcome."""
        await self.session.execute(
            update(TranscodeCommand)
            .where(TranscodeCommand.id == command_id)
            .values(
                status=CommandStatus.CONSUMED.value,
                outcome=outcome,
                consumed_at=utcnow(),
            )
        )


class StorageCleanupFailureRepository:
    """Repository for failed artifact cleanups awaiting reclaim."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        content_id: uuid.UUID,
        path: str,
        prefix: str,
        error_message: str,
    ) -> StorageCleanupFailure:
        failure = StorageCleanupFailure(
            content_id=content_id,
            path=path,
            prefix=prefix,
            error_message=error_message,
            attempts=1,
        )
        self.session.add(failure)
        await self.session.flush()
        return failure

    async def list_unreclaimed(self, limit: int = 100) -> list[StorageCleanupFailure]:
        """Get failures not yet reclaimed, oldest first."""
        result = await self.session.execute(
            select(StorageCleanupFailure)
            .where(StorageCleanupFailure.reclaimed_at.is_(None))
            .order_by(StorageCleanupFailure.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_reclaimed(self, failure: StorageCleanupFailure) -> None:
        failure.reclaimed_at = utcnow()
        await self.session.flush()

    async def record_attempt(self, failure: StorageCleanupFailure, error_message: str) -> None:
        """Count another failed reclaim attempt."""
        failure.attempts = (failure.attempts or 0) + 1
        failure.error_message = error_message
        await self.session.flush()
