"""Content service.

The write surface used by the operator API. Every committed update or delete
is announced to a ``ContentEventPublisher`` so the transcoding handlers can
react to it. Pipeline handlers write through the repository directly and
publish nothing.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from edustream.core.logging import log_info
from edustream.modules.content.models import Content
from edustream.modules.content.repository import ContentRepository
from edustream.modules.content.schemas import ContentCreate, ContentSnapshot, ContentUpdate

logger = logging.getLogger(__name__)


class ContentServiceError(Exception):
    """Base exception for content service errors."""
    pass


class ContentNotFoundError(ContentServiceError):
    """Content record not found."""
    pass


class PathImmutableError(ContentServiceError):
    """Attempt to change a path that is already set."""
    pass


class ContentEventPublisher(ABC):
    """Receives change events for content records."""

    @abstractmethod
    def content_updated(
        self,
        event_id: str,
        before: ContentSnapshot,
        after: ContentSnapshot,
    ) -> None:
        pass

    @abstractmethod
    def content_deleted(self, event_id: str, snapshot: ContentSnapshot) -> None:
        pass


class CeleryContentEventPublisher(ContentEventPublisher):
    """Enqueue the transcoding handler tasks for each change event."""

    def content_updated(self, event_id, before, after):
        from edustream.modules.transcoding.tasks import handle_content_updated_task

        handle_content_updated_task.delay(
            str(after.id),
            before.model_dump(mode="json"),
            after.model_dump(mode="json"),
            event_id,
        )

    def content_deleted(self, event_id, snapshot):
        from edustream.modules.transcoding.tasks import handle_content_deleted_task

        handle_content_deleted_task.delay(snapshot.model_dump(mode="json"), event_id)


class ContentService:
    """Service for content record management."""

    def __init__(
        self,
        session: AsyncSession,
        publisher: Optional[ContentEventPublisher] = None,
    ):
        self.session = session
        self.repo = ContentRepository(session)
        self.publisher = publisher or CeleryContentEventPublisher()

    async def create_content(self, data: ContentCreate) -> Content:
        """Create a content record. Creation publishes no event."""
        content = await self.repo.create(
            type=data.type.value,
            path=data.path,
            title=data.title,
        )
        await self.session.commit()
        log_info(logger, "Content created", content_id=str(content.id), content_path=content.path)
        return content

    async def get_content(self, content_id: uuid.UUID) -> Content:
        content = await self.repo.get_by_id(content_id)
        if content is None:
            raise ContentNotFoundError(f"Content {content_id} not found")
        return content

    async def update_content(self, content_id: uuid.UUID, data: ContentUpdate) -> Content:
        """Apply a partial update and publish the before/after snapshots.

        Raises:
            ContentNotFoundError: If the record does not exist
            PathImmutableError: If the update changes a path that is already set
        """
        content = await self.get_content(content_id)
        before = ContentSnapshot.model_validate(content)

        changes = data.model_dump(exclude_unset=True)
        if "path" in changes and before.path and changes["path"] != before.path:
            raise PathImmutableError(f"Content {content_id} already has a path")
        if "transcode_trigger" in changes and changes["transcode_trigger"] is not None:
            changes["transcode_trigger"] = changes["transcode_trigger"].value

        if changes:
            await self.repo.update_fields(content_id, **changes)
        await self.session.commit()

        content = await self.get_content(content_id)
        after = ContentSnapshot.model_validate(content)
        if changes:
            self.publisher.content_updated(str(uuid.uuid4()), before, after)
        return content

    async def delete_content(self, content_id: uuid.UUID) -> None:
        """Delete a record and publish its final snapshot."""
        content = await self.get_content(content_id)
        snapshot = ContentSnapshot.model_validate(content)

        await self.repo.delete(content_id)
        await self.session.commit()

        log_info(logger, "Content deleted", content_id=str(content_id), content_path=snapshot.path)
        self.publisher.content_deleted(str(uuid.uuid4()), snapshot)
