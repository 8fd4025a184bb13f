"""Publish a ready video to TikTok and track the publish job"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from reelflow.core.errors import AdapterError, InvalidState, InvalidTransition, NotFound, ValidationError
from reelflow.core.metrics import publish_jobs_counter
from reelflow.models.tiktok import TikTokAccount, TikTokPost
from reelflow.models.video import Video
from reelflow.services.lifecycle import transition
from reelflow.services.publish import PublishRequest, PublishResult, TikTokPublishAdapter
from reelflow.services.video_service import get_owned_video

publish_logger = logging.getLogger("publish")


def get_publish_adapter() -> TikTokPublishAdapter:
    return TikTokPublishAdapter()


def get_owned_account(db: Session, account_id: int, user_id: int) -> TikTokAccount:
    account = db.query(TikTokAccount).filter(
        TikTokAccount.id == account_id,
        TikTokAccount.user_id == user_id
    ).first()
    if not account:
        raise NotFound("TikTok account not found")
    return account


def get_owned_post(db: Session, post_id: int, user_id: int) -> TikTokPost:
    """Posts are owned through their video"""
    post = (
        db.query(TikTokPost)
        .join(Video, TikTokPost.video_id == Video.id)
        .filter(TikTokPost.id == post_id, Video.user_id == user_id)
        .first()
    )
    if not post:
        raise NotFound("Post not found")
    return post


def request_publish(
    db: Session,
    user_id: int,
    video_id: int,
    account_id: int,
    caption: str = "",
    hashtags: Optional[List[str]] = None,
    privacy_level: str = "PUBLIC_TO_EVERYONE",
    adapter: Optional[TikTokPublishAdapter] = None
) -> TikTokPost:
    """Start publishing a ready video.

    The video moves ready -> posting and a pending post is created before the
    provider is called. A synchronous rejection fails both the post and the
    video; the returned post carries the reason.

    Raises:
        NotFound: Video or account not owned by user_id
        InvalidState: Video is not ready (or another publish claimed it first)
        ValidationError: Video has no remote URL, or the account is inactive
    """
    hashtags = hashtags or []
    video = get_owned_video(db, video_id, user_id)
    if video.status != "ready":
        raise InvalidState(f"Video is {video.status}; only ready videos can be posted", current_status=video.status)
    if not video.remote_url:
        raise ValidationError("Video has no remote URL")

    account = get_owned_account(db, account_id, user_id)
    if not account.is_active:
        raise ValidationError("TikTok account is not active")

    if adapter is None:
        adapter = get_publish_adapter()

    try:
        transition(db, Video, video_id, ["ready"], "posting", progress_message="Posting to TikTok")
    except InvalidTransition as e:
        raise InvalidState("Video is already being posted", current_status=e.current_status)

    post = TikTokPost(
        video_id=video_id,
        tiktok_account_id=account_id,
        caption=caption,
        hashtags=hashtags,
        privacy_level=privacy_level,
        status="pending"
    )
    db.add(post)
    db.commit()
    db.refresh(post)

    request = PublishRequest(
        video_url=video.remote_url,
        caption=caption,
        hashtags=hashtags,
        privacy_level=privacy_level
    )
    try:
        publish_id = adapter.submit(account.access_token, request)
    except AdapterError as e:
        publish_logger.warning(f"TikTok rejected post {post.id} for video {video_id}: {e.message}")
        publish_jobs_counter.labels(outcome="rejected").inc()
        transition(db, TikTokPost, post.id, ["pending"], "failed", error_message=e.message)
        transition(
            db, Video, video_id, ["posting"], "failed",
            progress_message="Posting failed",
            error_message=e.message
        )
        db.refresh(post)
        return post

    transition(
        db, TikTokPost, post.id, ["pending"], "processing",
        publish_id=publish_id,
        submitted_at=datetime.now(timezone.utc)
    )
    publish_jobs_counter.labels(outcome="submitted").inc()
    publish_logger.info(f"Post {post.id} for video {video_id} submitted as {publish_id}")
    db.refresh(post)
    return post


def resolve_publish(db: Session, post_id: int, result: PublishResult) -> TikTokPost:
    """Apply a terminal publish outcome to the post and its video.

    Raises:
        InvalidTransition: The post already resolved (late poll or timeout race)
    """
    post = db.get(TikTokPost, post_id)
    if post is None:
        raise NotFound("Post not found")
    video_id = post.video_id

    if result.success:
        transition(
            db, TikTokPost, post_id, ["processing"], "completed",
            public_video_id=result.public_id,
            posted_at=datetime.now(timezone.utc)
        )
        _finish_video(db, video_id, "posted", progress=100, progress_message="Posted to TikTok")
    else:
        reason = result.reason or "Publish failed"
        transition(db, TikTokPost, post_id, ["processing"], "failed", error_message=reason)
        _finish_video(db, video_id, "failed", progress_message="Posting failed", error_message=reason)

    publish_jobs_counter.labels(outcome="succeeded" if result.success else "failed").inc()
    publish_logger.info(f"Post {post_id} resolved: {'completed' if result.success else 'failed'}")
    db.refresh(post)
    return post


def _finish_video(db: Session, video_id: int, to_status: str, **fields) -> None:
    try:
        transition(db, Video, video_id, ["posting"], to_status, **fields)
    except InvalidTransition as e:
        publish_logger.warning(f"Video {video_id} not moved to {to_status} after publish: {e.message}")


def poll_publish(db: Session, post: TikTokPost, adapter: Optional[TikTokPublishAdapter] = None) -> Optional[TikTokPost]:
    """Fetch the publish status of a processing post; resolve it if terminal

    Returns None while TikTok is still processing.
    """
    if adapter is None:
        adapter = get_publish_adapter()
    account = db.get(TikTokAccount, post.tiktok_account_id)
    result = adapter.fetch_result(account.access_token, post.publish_id)
    if result is None:
        return None
    return resolve_publish(db, post.id, result)
