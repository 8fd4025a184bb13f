"""Background status checker for in-flight generation and publish jobs"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from reelflow.core.config import settings
from reelflow.core.errors import AdapterError, InvalidTransition, ReelflowError
from reelflow.core.metrics import status_checker_runs_counter
from reelflow.db.session import SessionLocal
from reelflow.models.tiktok import TikTokPost
from reelflow.models.video import Video
from reelflow.services.batch_service import batches_awaiting_dispatch, dispatch_next
from reelflow.services.generation import GenerationResult
from reelflow.services.post_service import poll_publish, resolve_publish
from reelflow.services.publish import PublishResult
from reelflow.services.video_service import poll_generation, resolve_generation

logger = logging.getLogger(__name__)
status_logger = logging.getLogger("status_checker")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _expired(started_at: Optional[datetime], timeout_seconds: int, now: datetime) -> bool:
    started_at = _as_utc(started_at)
    return started_at is not None and now - started_at > timedelta(seconds=timeout_seconds)


def check_generating_videos(db: Session, now: Optional[datetime] = None) -> int:
    """Time out every stale generating video and poll the ones with a provider job

    A video stuck before its job handle was attached still times out.

    Returns:
        Number of videos resolved in this pass
    """
    now = now or datetime.now(timezone.utc)
    videos = db.query(Video).filter(Video.status == "generating").all()

    resolved = 0
    for video in videos:
        video_id = video.id
        try:
            if _expired(video.generation_started_at, settings.GENERATION_TIMEOUT_SECONDS, now):
                status_logger.warning(f"Video {video_id} generation timed out")
                resolve_generation(db, video_id, GenerationResult(
                    success=False,
                    reason=f"Generation timed out after {settings.GENERATION_TIMEOUT_SECONDS} seconds"
                ))
                resolved += 1
            elif video.provider_job_id and poll_generation(db, video) is not None:
                resolved += 1
        except InvalidTransition as e:
            status_logger.info(f"Video {video_id} changed while polling: {e.message}")
        except AdapterError as e:
            status_logger.warning(f"Could not fetch generation status for video {video_id}: {e.message}")
        except ReelflowError as e:
            status_logger.error(f"Error checking video {video_id}: {e.message}")
    return resolved


def check_processing_posts(db: Session, now: Optional[datetime] = None) -> int:
    """Time out or poll every post TikTok is still processing"""
    now = now or datetime.now(timezone.utc)
    posts = db.query(TikTokPost).filter(
        TikTokPost.status == "processing",
        TikTokPost.publish_id.isnot(None)
    ).all()

    resolved = 0
    for post in posts:
        post_id = post.id
        try:
            if _expired(post.submitted_at, settings.PUBLISH_TIMEOUT_SECONDS, now):
                status_logger.warning(f"Post {post_id} publish timed out")
                resolve_publish(db, post_id, PublishResult(
                    success=False,
                    reason=f"Publish timed out after {settings.PUBLISH_TIMEOUT_SECONDS} seconds"
                ))
                resolved += 1
            elif poll_publish(db, post) is not None:
                resolved += 1
        except InvalidTransition as e:
            status_logger.info(f"Post {post_id} changed while polling: {e.message}")
        except AdapterError as e:
            status_logger.warning(f"Could not fetch publish status for post {post_id}: {e.message}")
        except ReelflowError as e:
            status_logger.error(f"Error checking post {post_id}: {e.message}")
    return resolved


def redispatch_batches(db: Session) -> int:
    """Refill free slots of processing batches that still have pending items

    Covers a dispatcher that died holding the lock.
    """
    dispatched = 0
    for batch_id in batches_awaiting_dispatch(db):
        try:
            dispatched += dispatch_next(db, batch_id)
        except ReelflowError as e:
            status_logger.error(f"Error re-dispatching batch {batch_id}: {e.message}")
    return dispatched


def run_status_checks(db: Session) -> None:
    videos = check_generating_videos(db)
    posts = check_processing_posts(db)
    dispatched = redispatch_batches(db)
    if dispatched:
        status_logger.info(f"Status checker dispatched {dispatched} stalled batch items")
    if videos or posts:
        status_logger.info(f"Status checker resolved {videos} videos and {posts} posts")


async def status_checker_task():
    """Periodically poll in-flight jobs whose providers have not called back

    Each pass runs in a worker thread with its own session; errors are logged
    and the loop continues.
    """
    while True:
        try:
            await asyncio.sleep(settings.STATUS_CHECKER_INTERVAL)

            db = SessionLocal()
            try:
                await asyncio.to_thread(run_status_checks, db)
                status_checker_runs_counter.labels(status="success").inc()
            finally:
                db.close()
        except asyncio.CancelledError:
            logger.info("Status checker task cancelled")
            break
        except Exception as e:
            status_checker_runs_counter.labels(status="error").inc()
            logger.error(f"Error in status checker task: {e}", exc_info=True)
            await asyncio.sleep(settings.STATUS_CHECKER_INTERVAL)
