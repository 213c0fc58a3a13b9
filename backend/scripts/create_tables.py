"""Create the database tables for content records and the transcoding pipeline.

Usage:
    cd backend
    python -m scripts.create_tables
"""

import asyncio
import sys

from edustream.core.database import Base, engine

# Register every model on Base.metadata
from edustream.modules.content import models as content_models  # noqa: F401
from edustream.modules.transcoding import models as transcoding_models  # noqa: F401


async def create_tables() -> int:
    """Create all tables that do not exist yet."""
    print("=" * 50)
    print("Creating EduStream tables")
    print("=" * 50)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        print(f"✗ Error: {e}")
        return 1
    finally:
        await engine.dispose()

    for table in Base.metadata.sorted_tables:
        print(f"✓ {table.name}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(create_tables()))
