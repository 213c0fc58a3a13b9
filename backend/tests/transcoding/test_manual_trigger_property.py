"""Property-based tests for the manual re-transcode and cancel commands.

**Feature: edustream-transcoding, Property 2: Idempotent command clearing**
**Feature: edustream-transcoding, Property 3: Edge-triggering**
**Feature: edustream-transcoding, Property 4: Cancellation is always terminal**
"""

import pytest
from hypothesis import given, settings, strategies as st

from edustream.modules.transcoding.client import TranscoderAPIError

from fakes import (
    FakeCommandRepository,
    FakeContentRepository,
    FakeTranscoder,
    make_service,
    snapshot,
)


VIDEO_PATH = "contents/videos/lecture.mp4"

trigger_strategy = st.sampled_from([None, "manual", "cancel"])
status_strategy = st.sampled_from([None, "processing", "succeeded", "failed", "cancelled"])
job_name_strategy = st.one_of(st.none(), st.just("projects/1/locations/us-central1/jobs/job-123"))
failure_strategy = st.one_of(
    st.none(),
    st.builds(RuntimeError, st.text(max_size=20)),
    st.builds(TranscoderAPIError, st.text(min_size=1, max_size=20)),
)


class TestCommandClearing:
    """**Feature: edustream-transcoding, Property 2: Idempotent command clearing**"""

    @given(
        command=st.sampled_from(["manual", "cancel"]),
        before_trigger=st.sampled_from([None, "manual", "cancel"]),
        status=status_strategy,
        job_name=job_name_strategy,
        create_error=failure_strategy,
        delete_error=failure_strategy,
        has_path=st.booleans(),
    )
    @settings(max_examples=200)
    @pytest.mark.asyncio
    async def test_trigger_is_cleared_after_any_branch(
        self,
        command,
        before_trigger,
        status,
        job_name,
        create_error,
        delete_error,
        has_path,
    ) -> None:
        """**Feature: edustream-transcoding, Property 2: Idempotent command clearing**

        After any command branch completes, success or failure,
        transcode_trigger SHALL be cleared on the record.
        """
        if before_trigger == command:
            before_trigger = None
        repo = FakeContentRepository()
        content = repo.add(
            path=VIDEO_PATH if has_path else None,
            transcode_status=status,
            transcode_job_name=job_name,
            transcode_trigger=before_trigger,
        )
        before = snapshot(content)
        content.transcode_trigger = command
        after = snapshot(content)
        service = make_service(
            content_repo=repo,
            transcoder=FakeTranscoder(create_error=create_error, delete_error=delete_error),
        )

        result = await service.handle_content_updated(content.id, before, after, event_id="evt-1")

        assert result["action"] != "ignored"
        assert content.transcode_trigger is None


class TestEdgeTriggering:
    """**Feature: edustream-transcoding, Property 3: Edge-triggering**"""

    @given(
        trigger=st.sampled_from(["manual", "cancel"]),
        title_before=st.text(max_size=20),
        title_after=st.text(max_size=20),
    )
    @settings(max_examples=100)
    @pytest.mark.asyncio
    async def test_unchanged_trigger_does_not_resubmit(self, trigger, title_before, title_after) -> None:
        """**Feature: edustream-transcoding, Property 3: Edge-triggering**

        An update that leaves transcode_trigger at its command value SHALL NOT
        submit or cancel a job, nor write to the record.
        """
        repo = FakeContentRepository()
        content = repo.add(
            path=VIDEO_PATH,
            transcode_trigger=trigger,
            transcode_job_name="projects/1/locations/us-central1/jobs/job-123",
            title=title_before,
        )
        before = snapshot(content)
        after = snapshot(content, title=title_after)
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(content.id, before, after)

        assert result["action"] == "ignored"
        assert transcoder.created == []
        assert transcoder.deleted == []
        assert repo.writes == []

    @given(before_trigger=trigger_strategy)
    @settings(max_examples=20)
    @pytest.mark.asyncio
    async def test_clearing_the_trigger_is_not_a_command(self, before_trigger) -> None:
        """**Feature: edustream-transcoding, Property 3: Edge-triggering**

        The handler's own clearing write SHALL NOT re-invoke a command.
        """
        repo = FakeContentRepository()
        content = repo.add(path=VIDEO_PATH, transcode_trigger=before_trigger)
        before = snapshot(content)
        after = snapshot(content, transcode_trigger=None)
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(content.id, before, after)

        assert result["action"] == "ignored"
        assert transcoder.created == []

    @pytest.mark.asyncio
    async def test_redelivered_event_is_handled_once(self) -> None:
        repo = FakeContentRepository()
        commands = FakeCommandRepository()
        content = repo.add(path=VIDEO_PATH)
        before = snapshot(content)
        after = snapshot(content, transcode_trigger="manual")
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder, command_repo=commands)

        first = await service.handle_content_updated(content.id, before, after, event_id="evt-42")
        second = await service.handle_content_updated(content.id, before, after, event_id="evt-42")

        assert first["action"] == "submitted"
        assert second["action"] == "duplicate"
        assert second["previous_outcome"] == "submitted"
        assert len(transcoder.created) == 1
        assert commands.commands["evt-42"].status == "consumed"
        assert commands.commands["evt-42"].outcome == "submitted"


class TestCancellationTerminal:
    """**Feature: edustream-transcoding, Property 4: Cancellation is always terminal**"""

    @given(status=status_strategy, delete_error=failure_strategy, error_message=st.one_of(st.none(), st.text(max_size=20)))
    @settings(max_examples=100)
    @pytest.mark.asyncio
    async def test_cancel_with_job_always_lands_cancelled(self, status, delete_error, error_message) -> None:
        """**Feature: edustream-transcoding, Property 4: Cancellation is always terminal**

        Cancelling a record that has a job name SHALL leave it cancelled,
        whether or not the job service call raises.
        """
        repo = FakeContentRepository()
        content = repo.add(
            path=VIDEO_PATH,
            transcode_status=status,
            transcode_job_name="projects/1/locations/us-central1/jobs/job-123",
            error_message=error_message,
        )
        before = snapshot(content)
        content.transcode_trigger = "cancel"
        after = snapshot(content)
        transcoder = FakeTranscoder(delete_error=delete_error)
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(content.id, before, after)

        assert result["action"] == "cancelled"
        assert content.transcode_status == "cancelled"
        assert content.cancel_requested is True
        assert content.error_message is None
        assert transcoder.deleted == ["projects/1/locations/us-central1/jobs/job-123"]


class TestManualScenarios:
    """Concrete command scenarios."""

    @pytest.mark.asyncio
    async def test_cancel_survives_job_service_error(self) -> None:
        """A cancel whose delete call raises still ends cancelled and clean."""
        repo = FakeContentRepository()
        content = repo.add(path=VIDEO_PATH, transcode_status="processing", transcode_job_name="job-123")
        before = snapshot(content)
        after = snapshot(content, transcode_trigger="cancel")
        transcoder = FakeTranscoder(delete_error=TranscoderAPIError("job already finished", status_code=400))
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(content.id, before, after)

        assert content.transcode_status == "cancelled"
        assert content.transcode_trigger is None
        assert content.error_message is None
        assert content.transcode_job_name == "job-123"
        assert result["cancel_error"] == "job already finished"

    @pytest.mark.asyncio
    async def test_cancel_without_job_only_clears_trigger(self, caplog) -> None:
        repo = FakeContentRepository()
        content = repo.add(path=VIDEO_PATH, transcode_status="failed", error_message="boom")
        before = snapshot(content)
        after = snapshot(content, transcode_trigger="cancel")
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(content.id, before, after)

        assert result["action"] == "no_job"
        assert repo.writes == [(content.id, {"transcode_trigger": None})]
        assert content.transcode_status == "failed"
        assert transcoder.deleted == []
        assert any(r.levelname == "WARNING" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_manual_retranscode_submits_new_job(self) -> None:
        repo = FakeContentRepository()
        content = repo.add(
            path=VIDEO_PATH,
            transcode_status="cancelled",
            transcode_job_name="old-job",
            cancel_requested=True,
            error_message="previous failure",
        )
        before = snapshot(content)
        after = snapshot(content, transcode_trigger="manual")
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(content.id, before, after)

        assert result["action"] == "submitted"
        assert content.transcode_status == "processing"
        assert content.transcode_job_name == result["job_name"]
        assert content.transcode_job_name != "old-job"
        assert content.cancel_requested is False
        assert content.error_message is None
        assert transcoder.created[0]["inputUri"] == "gs://bucket/contents/videos/lecture.mp4"

    @pytest.mark.asyncio
    async def test_manual_and_upload_submit_identical_ladders(self) -> None:
        from edustream.modules.transcoding.schemas import StorageObjectEvent

        repo = FakeContentRepository()
        content = repo.add(path=VIDEO_PATH)
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder)

        await service.handle_object_finalized(StorageObjectEvent(name=VIDEO_PATH, metadata={"transcode": "true"}))
        await service.handle_content_updated(
            content.id, snapshot(content), snapshot(content, transcode_trigger="manual")
        )

        assert len(transcoder.created) == 2
        assert transcoder.created[0] == transcoder.created[1]

    @pytest.mark.asyncio
    async def test_manual_failure_marks_failed_and_clears_trigger(self) -> None:
        repo = FakeContentRepository()
        content = repo.add(path=VIDEO_PATH)
        before = snapshot(content)
        after = snapshot(content, transcode_trigger="manual")
        service = make_service(
            content_repo=repo,
            transcoder=FakeTranscoder(create_error=TranscoderAPIError("invalid input")),
        )

        result = await service.handle_content_updated(content.id, before, after)

        assert result["action"] == "failed"
        assert content.transcode_status == "failed"
        assert content.error_message == "invalid input"
        assert content.transcode_trigger is None

    @pytest.mark.asyncio
    async def test_manual_without_path_fails_without_submitting(self) -> None:
        repo = FakeContentRepository()
        content = repo.add(path=None)
        transcoder = FakeTranscoder()
        service = make_service(content_repo=repo, transcoder=transcoder)

        result = await service.handle_content_updated(
            content.id, snapshot(content), snapshot(content, transcode_trigger="manual")
        )

        assert result["action"] == "failed"
        assert content.transcode_status == "failed"
        assert content.transcode_trigger is None
        assert transcoder.created == []
