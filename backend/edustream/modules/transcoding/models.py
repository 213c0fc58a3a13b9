"""Database models for the transcoding pipeline."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from edustream.core.database import Base
from edustream.modules.content.models import utcnow


class CommandStatus(str, Enum):
    """Status of an operator command in the ledger."""
    PENDING = "pending"
    CONSUMED = "consumed"


class TranscodeCommand(Base):
    """Ledger entry for an operator command or an upload submission.

    ``event_id`` is unique, so a redelivered update or storage event cannot
    claim the same command twice.
    """
    __tablename__ = "transcode_commands"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    command: Mapped[str] = mapped_column(String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(50), default=CommandStatus.PENDING.value)
    outcome: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TranscodeCommand {self.command} {self.content_id} - {self.status}>"


class StorageCleanupFailure(Base):
    """Transcoded artifacts that could not be deleted with their record."""
    __tablename__ = "storage_cleanup_failures"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)
    prefix: Mapped[str] = mapped_column(String(1024), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    reclaimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<StorageCleanupFailure {self.prefix} - attempts={self.attempts}>"
