"""Content API router.

REST endpoints the operator UI uses to create records, request a
re-transcode or cancellation, and delete records.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from edustream.core.database import get_db
from edustream.modules.content.schemas import ContentCreate, ContentResponse, ContentUpdate
from edustream.modules.content.service import (
    ContentNotFoundError,
    ContentService,
    PathImmutableError,
)

router = APIRouter(prefix="/contents", tags=["contents"])


def get_content_service(db: AsyncSession = Depends(get_db)) -> ContentService:
    return ContentService(db)


@router.post("", response_model=ContentResponse, status_code=status.HTTP_201_CREATED)
async def create_content(
    data: ContentCreate,
    service: ContentService = Depends(get_content_service),
):
    """Create a content record."""
    return await service.create_content(data)


@router.get("/{content_id}", response_model=ContentResponse)
async def get_content(
    content_id: uuid.UUID,
    service: ContentService = Depends(get_content_service),
):
    """Get a content record."""
    try:
        return await service.get_content(content_id)
    except ContentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.patch("/{content_id}", response_model=ContentResponse)
async def update_content(
    content_id: uuid.UUID,
    data: ContentUpdate,
    service: ContentService = Depends(get_content_service),
):
    """Update a content record.

    Setting ``transcode_trigger`` to ``manual`` or ``cancel`` queues the
    matching transcoding command.
    """
    try:
        return await service.update_content(content_id, data)
    except ContentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PathImmutableError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete("/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(
    content_id: uuid.UUID,
    service: ContentService = Depends(get_content_service),
):
    """Delete a content record. Transcoded artifacts are removed afterwards."""
    try:
        await service.delete_content(content_id)
    except ContentNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
