"""Tests for the status state machines and the atomic transition operation"""
import pytest

from reelflow.core.errors import InvalidTransition, ValidationError
from reelflow.core.metrics import rejected_transitions_counter
from reelflow.models.batch_job import BatchJob, BatchJobItem
from reelflow.models.tiktok import TikTokPost
from reelflow.models.video import Video
from reelflow.services.lifecycle import (
    TRANSITIONS,
    check_transition,
    default_video_message,
    is_terminal,
    post_progress,
    transition,
)


@pytest.mark.critical
class TestVideoTransitions:
    """Test the video state machine"""

    def test_draft_to_generating(self, db_session, video_factory):
        video = video_factory("draft")

        transition(db_session, Video, video.id, ["draft"], "generating", progress=10)

        db_session.refresh(video)
        assert video.status == "generating"
        assert video.progress == 10

    def test_ready_requires_remote_url(self, db_session, video_factory):
        video = video_factory("generating")

        with pytest.raises(ValidationError):
            transition(db_session, Video, video.id, ["generating"], "ready", progress=100)

        db_session.refresh(video)
        assert video.status == "generating"

    def test_failed_requires_error_message(self, db_session, video_factory):
        video = video_factory("generating")

        with pytest.raises(ValidationError):
            transition(db_session, Video, video.id, ["generating"], "failed")

    def test_ready_writes_url_with_status(self, db_session, video_factory):
        video = video_factory("generating")

        transition(
            db_session, Video, video.id, ["generating"], "ready",
            progress=100, remote_url="https://cdn.example.com/out.mp4"
        )

        db_session.refresh(video)
        assert video.status == "ready"
        assert video.remote_url == "https://cdn.example.com/out.mp4"

    def test_stale_source_status_rejected_without_writes(self, db_session, video_factory):
        """A transition whose current status is not in the source set changes nothing"""
        video = video_factory("ready")

        with pytest.raises(InvalidTransition) as exc_info:
            transition(
                db_session, Video, video.id, ["generating"], "failed",
                progress=0, error_message="late failure"
            )

        assert exc_info.value.current_status == "ready"
        db_session.refresh(video)
        assert video.status == "ready"
        assert video.progress == 100
        assert video.error_message is None
        assert video.remote_url == "https://cdn.example.com/video.mp4"

    def test_move_outside_table_rejected(self, db_session, video_factory):
        video = video_factory("draft")

        with pytest.raises(InvalidTransition):
            transition(db_session, Video, video.id, ["draft"], "posted")

        db_session.refresh(video)
        assert video.status == "draft"

    def test_terminal_statuses_have_no_exits(self):
        for status in ("posted", "failed", "cancelled"):
            assert is_terminal(Video, status)
            assert status not in TRANSITIONS["videos"]

    def test_second_racer_loses(self, db_session, video_factory):
        """Two resolutions of the same job: exactly one wins"""
        video = video_factory("generating")

        transition(db_session, Video, video.id, ["generating"], "cancelled", progress=0)
        with pytest.raises(InvalidTransition):
            transition(
                db_session, Video, video.id, ["generating"], "ready",
                progress=100, remote_url="https://cdn.example.com/late.mp4"
            )

        db_session.refresh(video)
        assert video.status == "cancelled"
        assert video.remote_url is None

    def test_rejection_is_counted(self, db_session, video_factory):
        video = video_factory("cancelled")
        before = rejected_transitions_counter.labels(entity="video")._value.get()

        with pytest.raises(InvalidTransition):
            transition(db_session, Video, video.id, ["generating"], "cancelled")

        assert rejected_transitions_counter.labels(entity="video")._value.get() == before + 1


@pytest.mark.high
class TestOtherTables:
    """Test post, item and batch transition tables"""

    def test_post_table(self):
        check_transition(TikTokPost, ["pending"], "processing")
        check_transition(TikTokPost, ["pending"], "failed")
        check_transition(TikTokPost, ["processing"], "completed")
        with pytest.raises(InvalidTransition):
            check_transition(TikTokPost, ["pending"], "completed")

    def test_item_table(self):
        check_transition(BatchJobItem, ["pending"], "failed")
        with pytest.raises(InvalidTransition):
            check_transition(BatchJobItem, ["completed"], "failed")

    def test_batch_table(self):
        check_transition(BatchJob, ["pending", "processing"], "cancelled")
        with pytest.raises(InvalidTransition):
            check_transition(BatchJob, ["pending"], "completed")

    def test_deferred_commit(self, db_session, video_factory):
        video = video_factory("draft")

        transition(db_session, Video, video.id, ["draft"], "generating", commit=False)
        db_session.rollback()

        db_session.refresh(video)
        assert video.status == "draft"


@pytest.mark.medium
class TestProgressPolicies:
    """Test stored vs derived progress helpers"""

    def test_post_progress_is_function_of_status(self):
        assert post_progress("pending") == 0
        assert post_progress("processing") == 50
        assert post_progress("completed") == 100
        assert post_progress("failed") == 0

    def test_default_video_messages(self):
        assert default_video_message("ready") == "done"
        assert default_video_message("generating") == "generating"
        assert default_video_message("cancelled") == "cancelled"
