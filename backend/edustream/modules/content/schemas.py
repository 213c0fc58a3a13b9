"""Pydantic schemas for content records."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from edustream.modules.content.models import ContentType, TranscodeStatus, TranscodeTrigger


class ContentCreate(BaseModel):
    """Schema for creating a content record."""
    type: ContentType = ContentType.VIDEO
    path: Optional[str] = Field(None, max_length=1024, description="Storage path of the uploaded object")
    title: Optional[str] = Field(None, max_length=255)


class ContentUpdate(BaseModel):
    """Partial update from the operator UI.

    Only fields present in the request body are applied. ``path`` may only be
    set while the record has none.
    """
    title: Optional[str] = Field(None, max_length=255)
    path: Optional[str] = Field(None, max_length=1024)
    transcode_trigger: Optional[TranscodeTrigger] = None


class ContentSnapshot(BaseModel):
    """Point-in-time copy of a content record.

    Carried by update and delete events so handlers can compare the record
    before and after a write.
    """
    id: UUID
    type: ContentType
    path: Optional[str] = None
    title: Optional[str] = None
    transcode_status: Optional[TranscodeStatus] = None
    transcode_job_name: Optional[str] = None
    transcode_trigger: Optional[TranscodeTrigger] = None
    cancel_requested: bool = False
    hls_url: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True


class ContentResponse(ContentSnapshot):
    """Schema for content record responses."""
    created_at: datetime
    updated_at: datetime
