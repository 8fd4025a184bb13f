"""Tests for the polling status projections"""
import pytest

from reelflow.models.batch_job import BatchJobItem
from reelflow.models.tiktok import TikTokPost
from reelflow.services.batch_service import create_batch, dispatch_next
from reelflow.services.status_service import (
    get_batch_status,
    get_video_status,
    item_should_continue_polling,
    post_status,
    video_status,
)


@pytest.mark.high
class TestVideoStatus:
    """Test the video status projection"""

    @pytest.mark.parametrize("status,expected", [
        ("draft", True),
        ("generating", True),
        ("ready", True),
        ("posting", True),
        ("posted", False),
        ("failed", False),
        ("cancelled", False),
    ])
    def test_should_continue_polling(self, video_factory, status, expected):
        assert video_status(video_factory(status)).should_continue_polling is expected

    def test_default_message(self, video_factory):
        response = video_status(video_factory("ready"))
        assert response.message == "done"
        assert response.progress == 100
        assert response.remote_url == "https://cdn.example.com/video.mp4"

    def test_stored_message_wins(self, video_factory):
        response = video_status(video_factory("generating", progress_message="Waiting for provider"))
        assert response.message == "Waiting for provider"

    def test_failed_exposes_error(self, db_session, test_user, video_factory):
        video = video_factory("failed", error_message="avatar missing")
        response = get_video_status(db_session, video.id, test_user.id)
        assert response.status == "failed"
        assert response.error_message == "avatar missing"


@pytest.mark.high
class TestPostStatus:
    """Test the derived post progress"""

    @pytest.mark.parametrize("status,progress,polling", [
        ("pending", 0, True),
        ("processing", 50, True),
        ("completed", 100, False),
        ("failed", 0, False),
    ])
    def test_progress_and_polling(self, status, progress, polling):
        post = TikTokPost(id=1, video_id=1, tiktok_account_id=1, status=status)
        response = post_status(post)
        assert response.progress == progress
        assert response.should_continue_polling is polling

    def test_items_follow_post_rule(self):
        assert item_should_continue_polling(BatchJobItem(status="processing")) is True
        assert item_should_continue_polling(BatchJobItem(status="failed")) is False


@pytest.mark.medium
class TestBatchStatus:
    """Test the batch status projection"""

    def test_batch_status(self, db_session, test_user, fake_adapter):
        fake_adapter.reject_when = lambda config: config.get("script") == "two"
        batch = create_batch(
            db_session, test_user.id, "heygen", {"type": "heygen", "avatar_id": "a"},
            [{"script": "one"}, {"script": "two"}, {"script": "three"}]
        )
        dispatch_next(db_session, batch.id)
        db_session.expire_all()

        response = get_batch_status(db_session, batch.id, test_user.id)

        assert response.status == "processing"
        assert response.failed_count == 1
        assert response.progress == 33
        assert response.should_continue_polling is True
        assert [item.item_index for item in response.items] == [0, 1, 2]
        assert response.items[1].status == "failed"
        assert response.started_at is not None
