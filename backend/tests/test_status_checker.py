"""Tests for the background status checker"""
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from reelflow.core.errors import AdapterError
from reelflow.services.generation import GenerationResult
from reelflow.services.post_service import request_publish
from reelflow.services.publish import PublishResult
from reelflow.models.batch_job import BatchJobItem
from reelflow.services.batch_service import _resolve_item, create_batch, dispatch_next
from reelflow.tasks.status_checker import check_generating_videos, check_processing_posts, redispatch_batches


@pytest.mark.high
class TestGenerationChecks:
    """Test polling and timing out generation jobs"""

    def test_resolves_finished_job(self, db_session, video_factory, fake_adapter):
        video = video_factory("generating", provider_job_id="job-7")
        fake_adapter.results["job-7"] = GenerationResult(success=True, result_url="https://cdn.example.com/7.mp4")

        assert check_generating_videos(db_session) == 1

        db_session.refresh(video)
        assert video.status == "ready"
        assert video.remote_url == "https://cdn.example.com/7.mp4"

    def test_running_job_left_alone(self, db_session, video_factory, fake_adapter):
        video = video_factory("generating", provider_job_id="job-8")

        assert check_generating_videos(db_session) == 0

        db_session.refresh(video)
        assert video.status == "generating"

    def test_times_out_stale_job(self, db_session, video_factory, fake_adapter):
        video = video_factory(
            "generating",
            generation_started_at=datetime.now(timezone.utc) - timedelta(hours=2)
        )

        with patch("reelflow.tasks.status_checker.settings.GENERATION_TIMEOUT_SECONDS", 60):
            assert check_generating_videos(db_session) == 1

        db_session.refresh(video)
        assert video.status == "failed"
        assert "timed out" in video.error_message

    def test_times_out_video_without_job_handle(self, db_session, video_factory, fake_adapter):
        """Submit never recorded a job id; the video still times out"""
        stuck = video_factory(
            "generating",
            provider_job_id=None,
            generation_started_at=datetime.now(timezone.utc) - timedelta(hours=2)
        )
        fresh = video_factory("generating", provider_job_id=None)

        with patch("reelflow.tasks.status_checker.settings.GENERATION_TIMEOUT_SECONDS", 60):
            assert check_generating_videos(db_session) == 1

        db_session.refresh(stuck)
        db_session.refresh(fresh)
        assert stuck.status == "failed"
        assert "timed out" in stuck.error_message
        assert fresh.status == "generating"

    def test_provider_error_does_not_stop_pass(self, db_session, video_factory, fake_adapter):
        fake_adapter.fetch_error = AdapterError("heygen request timed out", provider="heygen", timeout=True)
        first = video_factory("generating", provider_job_id="job-1")
        second = video_factory("generating", provider_job_id="job-2")

        assert check_generating_videos(db_session) == 0

        db_session.refresh(first)
        db_session.refresh(second)
        assert first.status == "generating"
        assert second.status == "generating"


@pytest.mark.high
class TestPublishChecks:
    """Test polling and timing out publish jobs"""

    def test_resolves_published_post(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        video = video_factory("ready")
        post = request_publish(db_session, test_user.id, video.id, tiktok_account.id)
        fake_publisher.results[post.publish_id] = PublishResult(success=True, public_id="7300")

        assert check_processing_posts(db_session) == 1

        db_session.refresh(post)
        db_session.refresh(video)
        assert post.status == "completed"
        assert video.status == "posted"

    def test_times_out_stale_post(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        video = video_factory("ready")
        post = request_publish(db_session, test_user.id, video.id, tiktok_account.id)

        later = datetime.now(timezone.utc) + timedelta(hours=1)
        assert check_processing_posts(db_session, now=later) == 1

        db_session.refresh(post)
        assert post.status == "failed"
        assert "timed out" in post.error_message


@pytest.mark.high
class TestBatchRedispatch:
    """Test refilling batches left with free slots and pending items"""

    def test_stalled_batch_is_dispatched(self, db_session, test_user, fake_adapter):
        config = {"type": "heygen", "avatar_id": "avatar-1"}
        batch = create_batch(db_session, test_user.id, "heygen", config, [{"script": f"s{i}"} for i in range(3)])
        with patch.dict("reelflow.services.batch_service.BATCH_CONCURRENCY", {"heygen": 1}):
            dispatch_next(db_session, batch.id)
            first = db_session.query(BatchJobItem).filter(BatchJobItem.item_index == 0).first()
            # Resolved without a follow-up dispatch, as when the dispatcher died
            _resolve_item(db_session, first.id, success=True)

            assert redispatch_batches(db_session) == 1

        statuses = [
            item.status for item in
            db_session.query(BatchJobItem).order_by(BatchJobItem.item_index).all()
        ]
        assert statuses == ["completed", "processing", "pending"]
        assert len(fake_adapter.submitted) == 2

    def test_full_batch_left_alone(self, db_session, test_user, fake_adapter):
        config = {"type": "heygen", "avatar_id": "avatar-1"}
        batch = create_batch(db_session, test_user.id, "heygen", config, [{"script": "a"}, {"script": "b"}])
        with patch.dict("reelflow.services.batch_service.BATCH_CONCURRENCY", {"heygen": 1}):
            dispatch_next(db_session, batch.id)

            assert redispatch_batches(db_session) == 0

        assert len(fake_adapter.submitted) == 1
