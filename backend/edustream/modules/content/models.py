"""Content record model.

One row per uploaded media asset. The transcoding handlers and the operator
API both write to it; nothing locks it.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from edustream.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentType(str, Enum):
    """Kind of media asset a record describes."""

    VIDEO = "video"
    YOUTUBE = "youtube"
    GOOGLE_DRIVE = "googledrive"
    IMAGE = "image"
    AUDIO = "audio"


class TranscodeStatus(str, Enum):
    """Transcode state of a record. NULL means never requested."""

    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TranscodeTrigger(str, Enum):
    """One-shot operator command written to a record."""

    MANUAL = "manual"
    CANCEL = "cancel"


class Content(Base):
    """Content record for one media asset.

    ``path`` joins storage events and job notifications back to the record.
    It is indexed but not unique; lookups take the oldest match.
    """

    __tablename__ = "contents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    path: Mapped[Optional[str]] = mapped_column(
        String(1024), nullable=True, index=True
    )
    type: Mapped[str] = mapped_column(
        String(50), default=ContentType.VIDEO.value, nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Transcode state
    transcode_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    transcode_job_name: Mapped[Optional[str]] = mapped_column(
        String(512), nullable=True
    )
    transcode_trigger: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, default=False)
    hls_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def is_video(self) -> bool:
        """Check if the record takes part in transcoding."""
        return self.type == ContentType.VIDEO.value

    def __repr__(self) -> str:
        return f"<Content {self.id} - {self.type} - {self.transcode_status}>"
