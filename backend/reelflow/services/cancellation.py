"""User-initiated cancellation of generating videos and whole batches

Cancellation is cooperative: the provider job keeps running, and its late
result is rejected by the transition table because the video is no longer
generating.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from reelflow.core.errors import InvalidState, InvalidTransition
from reelflow.models.batch_job import BatchJob, BatchJobItem
from reelflow.models.video import Video
from reelflow.services.batch_service import (
    CANCELLED_ITEM_ERROR,
    _resolve_item,
    active_items,
    get_owned_batch,
    on_video_resolved,
)
from reelflow.services.lifecycle import is_terminal, transition
from reelflow.services.video_service import get_owned_video

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "cancelled by user"


def _cancel_generating(db: Session, video_id: int) -> None:
    transition(
        db, Video, video_id, ["generating"], "cancelled",
        progress=0,
        progress_message=CANCELLED_MESSAGE
    )


def cancel_video(db: Session, video_id: int, user_id: int) -> Video:
    """Cancel a generating video.

    If the video belongs to a batch item, the item is resolved as failed and
    the batch's freed slot is refilled.

    Raises:
        NotFound: Video missing or owned by someone else
        InvalidState: Video is not generating (including when a provider
            resolution or an earlier cancel won the race)
    """
    video = get_owned_video(db, video_id, user_id)
    if video.status != "generating":
        raise InvalidState("Cannot cancel a video that is not generating", current_status=video.status)

    try:
        _cancel_generating(db, video_id)
    except InvalidTransition as e:
        raise InvalidState("Cannot cancel a video that is not generating", current_status=e.current_status)

    logger.info(f"User {user_id} cancelled video {video_id}")
    on_video_resolved(db, video_id, success=False, error=CANCELLED_ITEM_ERROR)
    db.refresh(video)
    return video


def cancel_batch(db: Session, batch_id: int, user_id: int) -> BatchJob:
    """Cancel a pending or processing batch and every item not yet terminal.

    Items are cancelled one at a time. An item whose video resolved first
    keeps that outcome and is left to the normal resolution path.

    Raises:
        NotFound: Batch missing or owned by someone else
        InvalidState: Batch already completed, failed or cancelled
    """
    batch = get_owned_batch(db, batch_id, user_id)
    if is_terminal(BatchJob, batch.status):
        raise InvalidState(f"Batch is already {batch.status}", current_status=batch.status)

    try:
        transition(
            db, BatchJob, batch_id, ["pending", "processing"], "cancelled",
            completed_at=datetime.now(timezone.utc)
        )
    except InvalidTransition as e:
        raise InvalidState(f"Batch is already {e.current_status}", current_status=e.current_status)
    logger.info(f"User {user_id} cancelled batch {batch_id}")

    for item in active_items(db, batch_id):
        _cancel_item(db, item)

    db.refresh(batch)
    return batch


def _cancel_item(db: Session, item: BatchJobItem) -> None:
    item_id = item.id
    try:
        if item.status == "pending":
            _resolve_item(db, item_id, success=False, error=CANCELLED_ITEM_ERROR, from_statuses=["pending"])
            return

        if item.video_id is not None:
            # A draft is not submitted yet; the dispatcher skips it once cancelled
            try:
                transition(
                    db, Video, item.video_id, ["draft", "generating"], "cancelled",
                    progress=0,
                    progress_message=CANCELLED_MESSAGE
                )
            except InvalidTransition:
                # Resolved already; its outcome reaches the item through on_video_resolved
                logger.info(f"Video {item.video_id} resolved before batch item {item_id} was cancelled")
                return

        _resolve_item(db, item_id, success=False, error=CANCELLED_ITEM_ERROR)
    except InvalidTransition:
        logger.info(f"Batch item {item_id} resolved before it could be cancelled")
