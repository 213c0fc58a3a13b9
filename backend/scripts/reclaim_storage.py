"""Retry deleting transcoded folders whose cleanup failed.

Usage:
    cd backend
    python -m scripts.reclaim_storage --limit 50
"""

import argparse
import asyncio
import sys

from edustream.core.database import async_session_maker, engine
from edustream.core.logging import setup_logging
from edustream.core.storage import get_storage
from edustream.modules.transcoding.client import TranscoderClient
from edustream.modules.transcoding.repository import StorageCleanupFailureRepository
from edustream.modules.transcoding.service import TranscodingService


async def main(limit: int, dry_run: bool) -> int:
    """Run one reclaim pass."""
    print("\n" + "=" * 60)
    print("Reclaiming transcoded storage")
    print("=" * 60)

    try:
        async with async_session_maker() as session:
            if dry_run:
                failures = await StorageCleanupFailureRepository(session).list_unreclaimed(limit=limit)
                for failure in failures:
                    print(f"  {failure.prefix}  (attempts: {failure.attempts}, last error: {failure.error_message})")
                print(f"\n{len(failures)} folder(s) awaiting reclaim")
                return 0

            service = TranscodingService(session, transcoder=TranscoderClient(), storage=get_storage())
            summary = await service.reclaim_cleanup_failures(limit=limit)
    finally:
        await engine.dispose()

    print(f"\nResults:")
    print(f"  Reclaimed: {summary['reclaimed']}")
    print(f"  Still failing: {summary['failed']}")
    return 0 if summary["failed"] == 0 else 1


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--limit", type=int, default=100, help="maximum folders to process")
    parser.add_argument("--dry-run", action="store_true", help="only list folders awaiting reclaim")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    setup_logging(json_format=False)
    sys.exit(asyncio.run(main(args.limit, args.dry_run)))
