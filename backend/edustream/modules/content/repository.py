"""Content repository for database operations.

Field-level partial updates are issued as UPDATE statements so two writers
touching disjoint columns never overwrite each other.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from edustream.modules.content.models import Content, ContentType, utcnow


class ContentRepository:
    """Repository for Content CRUD operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        type: str = ContentType.VIDEO.value,
        path: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Content:
        """Create a new content record.

        Args:
            type: Content type value
            path: Storage path of the uploaded object
            title: Display title

        Returns:
            Content: Created record
        """
        content = Content(type=type, path=path, title=title, cancel_requested=False)
        self.session.add(content)
        await self.session.flush()
        return content

    async def get_by_id(self, content_id: uuid.UUID) -> Optional[Content]:
        """Get content record by ID."""
        result = await self.session.execute(
            select(Content).where(Content.id == content_id)
        )
        return result.scalar_one_or_none()

    async def find_by_path(self, path: str) -> Optional[Content]:
        """Get the first record whose path equals ``path``.

        Several records may share a path; the oldest one wins.
        """
        result = await self.session.execute(
            select(Content)
            .where(Content.path == path)
            .order_by(Content.created_at, Content.id)
            .limit(1)
        )
        return result.scalars().first()

    async def update_fields(self, content_id: uuid.UUID, **fields: Any) -> bool:
        """Write only the given columns. A value of None clears the column.

        Returns:
            bool: True if the record exists
        """
        fields.setdefault("updated_at", utcnow())
        result = await self.session.execute(
            update(Content).where(Content.id == content_id).values(**fields)
        )
        return result.rowcount > 0

    async def update_if_job_matches(
        self,
        content_id: uuid.UUID,
        job_name: str,
        **fields: Any,
    ) -> bool:
        """Write the given columns only while ``job_name`` is the current job.

        Returns:
            bool: True if the write landed, False if the record moved on to
            another job (or no longer exists)
        """
        fields.setdefault("updated_at", utcnow())
        result = await self.session.execute(
            update(Content)
            .where(
                Content.id == content_id,
                Content.transcode_job_name == job_name,
            )
            .values(**fields)
        )
        return result.rowcount > 0

    async def delete(self, content_id: uuid.UUID) -> bool:
        """Delete a content record.

        Returns:
            bool: True if a row was deleted
        """
        result = await self.session.execute(
            delete(Content).where(Content.id == content_id)
        )
        return result.rowcount > 0
