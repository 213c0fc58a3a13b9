"""Content record module."""

from edustream.modules.content.models import (
    Content,
    ContentType,
    TranscodeStatus,
    TranscodeTrigger,
)
from edustream.modules.content.repository import ContentRepository
from edustream.modules.content.schemas import (
    ContentCreate,
    ContentUpdate,
    ContentSnapshot,
    ContentResponse,
)
from edustream.modules.content.service import (
    ContentService,
    ContentServiceError,
    ContentNotFoundError,
    PathImmutableError,
    ContentEventPublisher,
    CeleryContentEventPublisher,
)

__all__ = [
    # Models
    "Content",
    "ContentType",
    "TranscodeStatus",
    "TranscodeTrigger",
    # Repository
    "ContentRepository",
    # Schemas
    "ContentCreate",
    "ContentUpdate",
    "ContentSnapshot",
    "ContentResponse",
    # Service
    "ContentService",
    "ContentServiceError",
    "ContentNotFoundError",
    "PathImmutableError",
    "ContentEventPublisher",
    "CeleryContentEventPublisher",
]
