"""Shared test configuration.

Settings require a database and broker URL, so defaults are set before any
``edustream`` module is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("GCP_PROJECT_NUMBER", "123456789")
os.environ.setdefault("VIDEO_BUCKET", "bucket")
os.environ.setdefault("STORAGE_BACKEND", "local")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

from edustream.core.database import Base
from edustream.modules.content import models as content_models  # noqa: F401
from edustream.modules.transcoding import models as transcoding_models  # noqa: F401
from edustream.modules.transcoding.layout import StorageLayout


@pytest.fixture
def layout() -> StorageLayout:
    return StorageLayout(bucket="bucket")


@pytest_asyncio.fixture
async def session_maker():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session
