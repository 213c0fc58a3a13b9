"""Pydantic schemas for transcoding events.

Covers the Pub/Sub push envelope, the Cloud Storage object notification and
the Transcoder API job notification.
"""

import base64
import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class PubSubMessage(BaseModel):
    """Message inside a Pub/Sub push delivery."""
    data: str = ""
    message_id: Optional[str] = Field(None, alias="messageId")
    attributes: dict[str, str] = Field(default_factory=dict)
    publish_time: Optional[str] = Field(None, alias="publishTime")

    class Config:
        populate_by_name = True

    def decode_json(self) -> Any:
        """Decode the base64 data payload as JSON."""
        return json.loads(base64.b64decode(self.data).decode("utf-8"))


class PubSubPushEnvelope(BaseModel):
    """Pub/Sub push request body."""
    message: PubSubMessage
    subscription: Optional[str] = None


class StorageObjectEvent(BaseModel):
    """Cloud Storage object-finalized notification payload."""
    name: str
    bucket: Optional[str] = None
    content_type: Optional[str] = Field(None, alias="contentType")
    metadata: Optional[dict[str, Any]] = None

    class Config:
        populate_by_name = True


class JobError(BaseModel):
    message: Optional[str] = None


class TranscoderJobInfo(BaseModel):
    """Job description carried by a lifecycle notification."""
    name: Optional[str] = None
    input_uri: str = Field("", alias="inputUri")
    output_uri: Optional[str] = Field(None, alias="outputUri")
    state: Optional[str] = None
    error: Optional[JobError] = None

    class Config:
        populate_by_name = True


class TranscoderJobEvent(BaseModel):
    """Transcoder API lifecycle notification (``{"job": {...}}``)."""
    job: TranscoderJobInfo


class CleanupFailureResponse(BaseModel):
    """Schema for a failed artifact cleanup."""
    id: UUID
    content_id: UUID
    path: str
    prefix: str
    error_message: Optional[str]
    attempts: int
    created_at: datetime
    reclaimed_at: Optional[datetime]

    class Config:
        from_attributes = True
