"""Read-only status projections for client polling

should_continue_polling is true exactly while the entity's status is not
terminal for its type.
"""
from sqlalchemy.orm import Session

from reelflow.models.batch_job import BatchJob, BatchJobItem
from reelflow.models.tiktok import TikTokPost
from reelflow.models.video import Video
from reelflow.schemas.tiktok import PostStatusResponse
from reelflow.schemas.video import BatchItemResponse, BatchStatusResponse, BatchSummary, VideoStatusResponse
from reelflow.services.batch_service import batch_progress, get_owned_batch
from reelflow.services.lifecycle import default_video_message, is_terminal, post_progress
from reelflow.services.post_service import get_owned_post
from reelflow.services.video_service import get_owned_video


def video_status(video: Video) -> VideoStatusResponse:
    return VideoStatusResponse(
        id=video.id,
        status=video.status,
        progress=video.progress or 0,
        message=video.progress_message or default_video_message(video.status),
        remote_url=video.remote_url,
        error_message=video.error_message,
        should_continue_polling=not is_terminal(Video, video.status)
    )


def post_status(post: TikTokPost) -> PostStatusResponse:
    """Progress is derived from the status, never read from the row"""
    return PostStatusResponse(
        id=post.id,
        status=post.status,
        progress=post_progress(post.status),
        public_video_id=post.public_video_id,
        error_message=post.error_message,
        posted_at=post.posted_at,
        should_continue_polling=not is_terminal(TikTokPost, post.status)
    )


def batch_summary(batch: BatchJob) -> BatchSummary:
    return BatchSummary(
        id=batch.id,
        type=batch.type,
        name=batch.name,
        status=batch.status,
        total_count=batch.total_count,
        completed_count=batch.completed_count,
        failed_count=batch.failed_count,
        progress=batch_progress(batch),
        created_at=batch.created_at
    )


def batch_status(batch: BatchJob) -> BatchStatusResponse:
    summary = batch_summary(batch)
    return BatchStatusResponse(
        **summary.model_dump(),
        items=[BatchItemResponse.model_validate(item) for item in batch.items],
        started_at=batch.started_at,
        completed_at=batch.completed_at,
        should_continue_polling=not is_terminal(BatchJob, batch.status)
    )


def item_should_continue_polling(item: BatchJobItem) -> bool:
    return not is_terminal(BatchJobItem, item.status)


def get_video_status(db: Session, video_id: int, user_id: int) -> VideoStatusResponse:
    return video_status(get_owned_video(db, video_id, user_id))


def get_post_status(db: Session, post_id: int, user_id: int) -> PostStatusResponse:
    return post_status(get_owned_post(db, post_id, user_id))


def get_batch_status(db: Session, batch_id: int, user_id: int) -> BatchStatusResponse:
    return batch_status(get_owned_batch(db, batch_id, user_id))
