"""Property-based tests for transcoded artifact cleanup.

**Feature: edustream-transcoding, Property 6: Cleanup scoping**
"""

import uuid

import pytest
from hypothesis import given, settings, strategies as st

from edustream.modules.content.schemas import ContentSnapshot

from fakes import FakeCleanupRepository, FakeStorage, make_service


non_video_type_strategy = st.sampled_from(["youtube", "googledrive", "image", "audio"])
path_strategy = st.one_of(st.none(), st.just("contents/videos/old.mp4"), st.text(max_size=30))


def deleted_snapshot(**fields) -> ContentSnapshot:
    fields.setdefault("id", uuid.uuid4())
    fields.setdefault("type", "video")
    return ContentSnapshot(**fields)


class TestCleanupScoping:
    """**Feature: edustream-transcoding, Property 6: Cleanup scoping**"""

    @given(content_type=non_video_type_strategy, path=path_strategy)
    @settings(max_examples=100)
    @pytest.mark.asyncio
    async def test_non_video_records_never_touch_storage(self, content_type: str, path) -> None:
        """**Feature: edustream-transcoding, Property 6: Cleanup scoping**

        Deleting a record whose type is not video SHALL NOT issue any
        storage delete.
        """
        storage = FakeStorage(keys=["transcoded-videos/old.mp4/manifest.m3u8"])
        service = make_service(storage=storage)

        result = await service.handle_content_deleted(deleted_snapshot(type=content_type, path=path))

        assert result["action"] == "skipped"
        assert storage.prefix_deletes == []
        assert storage.keys == {"transcoded-videos/old.mp4/manifest.m3u8"}

    @pytest.mark.asyncio
    async def test_video_without_path_is_skipped(self) -> None:
        storage = FakeStorage()
        service = make_service(storage=storage)

        result = await service.handle_content_deleted(deleted_snapshot(path=None))

        assert result["action"] == "skipped"
        assert storage.prefix_deletes == []


class TestCleanupScenarios:

    @pytest.mark.asyncio
    async def test_video_delete_removes_transcoded_prefix(self) -> None:
        """Deleting a video record SHALL prefix-delete its transcoded folder."""
        storage = FakeStorage(keys=[
            "transcoded-videos/old.mp4/manifest.m3u8",
            "transcoded-videos/old.mp4/360p/segment_0.m4s",
            "transcoded-videos/old.mp4/720p/segment_0.m4s",
            "transcoded-videos/old.mp4.bak/manifest.m3u8",
            "contents/videos/old.mp4",
        ])
        service = make_service(storage=storage)

        result = await service.handle_content_deleted(deleted_snapshot(path="contents/videos/old.mp4"))

        assert storage.prefix_deletes == ["transcoded-videos/old.mp4/"]
        assert result == {
            "action": "cleaned",
            "content_id": result["content_id"],
            "prefix": "transcoded-videos/old.mp4/",
            "deleted": 3,
        }
        assert storage.keys == {"transcoded-videos/old.mp4.bak/manifest.m3u8", "contents/videos/old.mp4"}

    @pytest.mark.asyncio
    async def test_storage_failure_is_recorded_not_raised(self) -> None:
        cleanup_repo = FakeCleanupRepository()
        service = make_service(storage=FakeStorage(fail=True), cleanup_repo=cleanup_repo)
        snapshot = deleted_snapshot(path="contents/videos/old.mp4")

        result = await service.handle_content_deleted(snapshot)

        assert result["action"] == "cleanup_failed"
        assert len(cleanup_repo.failures) == 1
        failure = cleanup_repo.failures[0]
        assert failure.content_id == snapshot.id
        assert failure.prefix == "transcoded-videos/old.mp4/"
        assert "access denied" in failure.error_message

    @pytest.mark.asyncio
    async def test_failure_to_record_is_only_logged(self, caplog) -> None:
        service = make_service(storage=FakeStorage(fail=True), cleanup_repo=FakeCleanupRepository(fail_record=True))

        result = await service.handle_content_deleted(deleted_snapshot(path="contents/videos/old.mp4"))

        assert result["action"] == "cleanup_failed"
        service.session.rollback.assert_awaited()
        assert any("Could not record cleanup failure" in r.getMessage() for r in caplog.records)


class TestReclaim:
    """Failed cleanups are retried by the reclaim pass."""

    @pytest.mark.asyncio
    async def test_reclaim_marks_successful_prefixes(self) -> None:
        cleanup_repo = FakeCleanupRepository()
        failure = await cleanup_repo.record(uuid.uuid4(), "contents/videos/a.mp4", "transcoded-videos/a.mp4/", "timeout")
        storage = FakeStorage(keys=["transcoded-videos/a.mp4/manifest.m3u8"])
        service = make_service(storage=storage, cleanup_repo=cleanup_repo)

        result = await service.reclaim_cleanup_failures()

        assert result == {"action": "reclaimed", "reclaimed": 1, "failed": 0}
        assert failure.reclaimed_at is not None
        assert storage.keys == set()
        assert await cleanup_repo.list_unreclaimed() == []

    @pytest.mark.asyncio
    async def test_reclaim_counts_failed_attempts(self) -> None:
        cleanup_repo = FakeCleanupRepository()
        failure = await cleanup_repo.record(uuid.uuid4(), "contents/videos/a.mp4", "transcoded-videos/a.mp4/", "timeout")
        service = make_service(storage=FakeStorage(fail=True), cleanup_repo=cleanup_repo)

        result = await service.reclaim_cleanup_failures()

        assert result == {"action": "reclaimed", "reclaimed": 0, "failed": 1}
        assert failure.attempts == 2
        assert failure.reclaimed_at is None
        assert "access denied" in failure.error_message
