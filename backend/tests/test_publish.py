"""Tests for publishing videos to TikTok"""
import pytest

from reelflow.core.errors import InvalidState, InvalidTransition, NotFound, ValidationError
from reelflow.models.tiktok import TikTokAccount, TikTokPost
from reelflow.services.post_service import get_owned_post, request_publish, resolve_publish
from reelflow.services.publish import PublishResult


@pytest.mark.critical
class TestRequestPublish:
    """Test starting a publish job"""

    def test_ready_video_is_submitted(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        video = video_factory("ready")

        post = request_publish(
            db_session, test_user.id, video.id, tiktok_account.id,
            caption="Launch day", hashtags=["new"], privacy_level="SELF_ONLY"
        )

        assert post.status == "processing"
        assert post.publish_id == "pub-1"
        assert post.submitted_at is not None
        db_session.refresh(video)
        assert video.status == "posting"
        access_token, request = fake_publisher.submitted[0]
        assert access_token == "tiktok-access-token"
        assert request.video_url == "https://cdn.example.com/video.mp4"
        assert request.hashtags == ["new"]

    def test_video_must_be_ready(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        video = video_factory("generating")

        with pytest.raises(InvalidState):
            request_publish(db_session, test_user.id, video.id, tiktok_account.id)

        assert db_session.query(TikTokPost).count() == 0
        assert fake_publisher.submitted == []

    def test_video_posted_only_once(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        video = video_factory("ready")
        request_publish(db_session, test_user.id, video.id, tiktok_account.id)

        with pytest.raises(InvalidState):
            request_publish(db_session, test_user.id, video.id, tiktok_account.id)
        assert db_session.query(TikTokPost).count() == 1

    def test_inactive_account(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        tiktok_account.is_active = False
        db_session.commit()
        video = video_factory("ready")

        with pytest.raises(ValidationError):
            request_publish(db_session, test_user.id, video.id, tiktok_account.id)

        db_session.refresh(video)
        assert video.status == "ready"

    def test_other_users_account(self, db_session, test_user, test_user_2, video_factory, fake_publisher):
        account = TikTokAccount(user_id=test_user_2.id, open_id="open-2", access_token="other-token")
        db_session.add(account)
        db_session.commit()
        video = video_factory("ready")

        with pytest.raises(NotFound):
            request_publish(db_session, test_user.id, video.id, account.id)

    def test_other_users_video(self, db_session, test_user_2, tiktok_account, video_factory, fake_publisher):
        video = video_factory("ready")
        with pytest.raises(NotFound):
            request_publish(db_session, test_user_2.id, video.id, tiktok_account.id)

    def test_rejection_fails_post_and_video(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        fake_publisher.reject = True
        video = video_factory("ready")

        post = request_publish(db_session, test_user.id, video.id, tiktok_account.id)

        assert post.status == "failed"
        assert "spam_risk" in post.error_message
        db_session.refresh(video)
        assert video.status == "failed"
        assert video.error_message == post.error_message


@pytest.mark.critical
class TestResolvePublish:
    """Test applying TikTok's publish outcome"""

    @pytest.fixture
    def processing_post(self, db_session, test_user, tiktok_account, video_factory, fake_publisher):
        video = video_factory("ready")
        return request_publish(db_session, test_user.id, video.id, tiktok_account.id)

    def test_success_posts_video(self, db_session, processing_post):
        post = resolve_publish(db_session, processing_post.id, PublishResult(success=True, public_id="7312345"))

        assert post.status == "completed"
        assert post.public_video_id == "7312345"
        assert post.posted_at is not None
        video = post.video
        assert video.status == "posted"
        assert video.progress == 100

    def test_failure_fails_video(self, db_session, processing_post):
        post = resolve_publish(db_session, processing_post.id, PublishResult(success=False, reason="video_pull_failed"))

        assert post.status == "failed"
        assert post.error_message == "video_pull_failed"
        assert post.video.status == "failed"

    def test_second_resolution_rejected(self, db_session, processing_post):
        resolve_publish(db_session, processing_post.id, PublishResult(success=True, public_id="1"))

        with pytest.raises(InvalidTransition):
            resolve_publish(db_session, processing_post.id, PublishResult(success=False, reason="late"))

        post = db_session.get(TikTokPost, processing_post.id)
        db_session.refresh(post)
        assert post.status == "completed"
        assert post.error_message is None

    def test_post_owned_through_video(self, db_session, test_user, test_user_2, processing_post):
        assert get_owned_post(db_session, processing_post.id, test_user.id).id == processing_post.id
        with pytest.raises(NotFound):
            get_owned_post(db_session, processing_post.id, test_user_2.id)
