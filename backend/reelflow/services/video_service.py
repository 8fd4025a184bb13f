"""Single-video generation lifecycle - dispatch, provider resolution, lookup"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from reelflow.core.errors import AdapterError, InvalidTransition, NotFound, ValidationError
from reelflow.core.metrics import generation_jobs_counter
from reelflow.models.video import Video
from reelflow.services.generation import GenerationAdapter, GenerationResult, get_generation_adapter
from reelflow.services.lifecycle import transition

generation_logger = logging.getLogger("generation")


def get_owned_video(db: Session, video_id: int, user_id: int) -> Video:
    """Fetch a video by id, filtered by owner

    Raises:
        NotFound: No such video owned by user_id
    """
    video = db.query(Video).filter(Video.id == video_id, Video.user_id == user_id).first()
    if not video:
        raise NotFound("Video not found")
    return video


def create_video(
    db: Session,
    user_id: int,
    title: Optional[str] = None,
    product_id: Optional[str] = None,
    generation_type: Optional[str] = None
) -> Video:
    """Insert a video in draft"""
    video = Video(
        user_id=user_id,
        title=title,
        product_id=product_id,
        generation_type=generation_type,
        status="draft",
        progress=0
    )
    db.add(video)
    db.commit()
    db.refresh(video)
    return video


def dispatch_generation(
    db: Session,
    video: Video,
    config: Dict[str, Any],
    adapter: Optional[GenerationAdapter] = None
) -> Video:
    """Move a draft video to generating and submit its generation job.

    A synchronous provider rejection fails the video immediately instead of
    raising; the returned video carries the outcome.

    Args:
        db: Database session
        video: Draft video
        config: Provider parameters (batch config merged with per-item fields)
        adapter: Adapter to submit through (defaults to the one for video.generation_type)

    Returns:
        The refreshed video (generating, or failed with error_message)
    """
    if adapter is None:
        adapter = get_generation_adapter(video.generation_type)

    transition(
        db, Video, video.id, ["draft"], "generating",
        progress=10,
        progress_message="Submitting generation job",
        generation_started_at=datetime.now(timezone.utc)
    )

    try:
        job_id = adapter.submit(config)
    except AdapterError as e:
        generation_logger.warning(f"{adapter.provider} rejected video {video.id}: {e.message}")
        generation_jobs_counter.labels(provider=adapter.provider, outcome="rejected").inc()
        try:
            transition(
                db, Video, video.id, ["generating"], "failed",
                progress=0,
                progress_message="Generation request was rejected",
                error_message=e.message
            )
        except InvalidTransition:
            generation_logger.info(f"Video {video.id} left generating before its rejection was recorded")
        db.refresh(video)
        return video

    attach_job_handle(db, video.id, job_id)
    generation_jobs_counter.labels(provider=adapter.provider, outcome="submitted").inc()
    generation_logger.info(f"Video {video.id} generating with {adapter.provider} job {job_id}")
    db.refresh(video)
    return video


def attach_job_handle(db: Session, video_id: int, job_id: str) -> bool:
    """Record the provider job id while the video is still generating

    Returns False when the video was cancelled (or otherwise moved on) before
    the handle arrived; the job's eventual result is then ignored.
    """
    result = db.execute(
        update(Video)
        .where(Video.id == video_id, Video.status == "generating")
        .values(provider_job_id=job_id, progress_message="Waiting for provider")
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        generation_logger.info(f"Video {video_id} left generating before job {job_id} was attached")
        return False
    return True


def start_generation(
    db: Session,
    user_id: int,
    config: Dict[str, Any],
    title: Optional[str] = None,
    product_id: Optional[str] = None,
    adapter: Optional[GenerationAdapter] = None
) -> Video:
    """Create a video and dispatch its generation in one call"""
    provider = config.get("type")
    if not provider:
        raise ValidationError("config.type is required")
    if adapter is None:
        adapter = get_generation_adapter(provider)

    video = create_video(db, user_id, title=title, product_id=product_id, generation_type=provider)
    return dispatch_generation(db, video, config, adapter=adapter)


def resolve_generation(db: Session, video_id: int, result: GenerationResult) -> Video:
    """Apply a normalized provider resolution to a generating video.

    Raises:
        InvalidTransition: The video is no longer generating (cancelled, timed
            out or already resolved); the late result is discarded.
    """
    if result.success:
        transition(
            db, Video, video_id, ["generating"], "ready",
            progress=100,
            progress_message="Generation complete",
            remote_url=result.result_url
        )
    else:
        transition(
            db, Video, video_id, ["generating"], "failed",
            progress=0,
            progress_message="Generation failed",
            error_message=result.reason or "Generation failed"
        )

    video = db.get(Video, video_id)
    generation_jobs_counter.labels(
        provider=video.generation_type or "unknown",
        outcome="succeeded" if result.success else "failed"
    ).inc()
    generation_logger.info(f"Video {video_id} resolved: {video.status}")

    # Deferred import: batch_service dispatches through this module
    from reelflow.services.batch_service import on_video_resolved
    on_video_resolved(db, video_id, success=result.success, error=result.reason)
    return video


def find_video_by_job(db: Session, provider: str, job_id: str) -> Optional[Video]:
    return db.query(Video).filter(
        Video.generation_type == provider,
        Video.provider_job_id == job_id
    ).first()


def handle_generation_callback(db: Session, provider: str, payload: Dict[str, Any]) -> str:
    """Resolve the video owning a provider webhook's job id

    Returns:
        "resolved", "pending" (job not terminal yet), "unknown" (no video for
        that job) or "ignored" (video already left generating)

    Raises:
        ValidationError: Unknown provider, or a payload that is not a
            recognizable callback
    """
    adapter = get_generation_adapter(provider)
    try:
        job_id, result = adapter.normalize_callback(payload)
    except AdapterError as e:
        raise ValidationError(e.message) from e

    video = find_video_by_job(db, provider, job_id)
    if video is None:
        generation_logger.warning(f"{provider} callback for unknown job {job_id}")
        return "unknown"
    if result is None:
        return "pending"

    try:
        resolve_generation(db, video.id, result)
    except InvalidTransition as e:
        generation_logger.info(f"Ignoring late {provider} callback for video {video.id}: {e.message}")
        return "ignored"
    return "resolved"


def poll_generation(db: Session, video: Video, adapter: Optional[GenerationAdapter] = None) -> Optional[Video]:
    """Ask the provider about a generating video's job; resolve it if terminal

    Returns None while the job is still running.
    """
    if adapter is None:
        adapter = get_generation_adapter(video.generation_type)
    result = adapter.fetch_result(video.provider_job_id)
    if result is None:
        return None
    return resolve_generation(db, video.id, result)
