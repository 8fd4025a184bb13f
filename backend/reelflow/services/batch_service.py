"""Batch orchestrator - fan a CSV of items out into generation jobs

Items are dispatched in CSV order, never more than the per-type concurrency
ceiling at once. Each item resolves exactly once (completed or failed); the
batch counters are only ever incremented, and the batch is finalized by a
single conditional update once every item is terminal.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import case, func, update
from sqlalchemy.orm import Session

from reelflow.core.config import BATCH_CONCURRENCY, PROVIDER_TIMEOUT_SECONDS, settings
from reelflow.core.errors import InvalidTransition, NotFound, ValidationError
from reelflow.db.redis import distributed_lock, extend_lock, raise_flag, take_flag
from reelflow.models.batch_job import BatchJob, BatchJobItem
from reelflow.models.video import Video
from reelflow.services.lifecycle import check_transition, transition
from reelflow.services.video_service import create_video, dispatch_generation

batch_logger = logging.getLogger("batch")

# Row fields that may override or complete the batch-level config
ITEM_FIELDS = ("title", "script", "prompt", "image_url", "product_id")

CANCELLED_ITEM_ERROR = "cancelled"


def validate_item(batch_type: str, item: Dict[str, Any], label: str = "Item") -> None:
    """Check a row carries the input its provider needs"""
    if batch_type == "heygen" and not item.get("script"):
        raise ValidationError(f"{label}: script is required for HeyGen videos")
    if batch_type == "kling" and not (item.get("prompt") or item.get("image_url")):
        raise ValidationError(f"{label}: prompt or image_url is required for Kling videos")


def _validate_items(batch_type: str, items: List[Dict[str, Any]]) -> None:
    if not items:
        raise ValidationError("A batch needs at least one item")
    if len(items) > settings.MAX_BATCH_ITEMS:
        raise ValidationError(f"A batch holds at most {settings.MAX_BATCH_ITEMS} items")

    for index, item in enumerate(items):
        validate_item(batch_type, item, label=f"Item {index + 1}")


def create_batch(
    db: Session,
    user_id: int,
    batch_type: str,
    config: Dict[str, Any],
    items: List[Dict[str, Any]],
    name: Optional[str] = None
) -> BatchJob:
    """Validate and insert a batch job with one pending item per row.

    Nothing is written if validation fails.

    Raises:
        ValidationError: Unknown type, config for another provider, empty or
            oversized item list, or a row missing its required field
    """
    if batch_type not in BATCH_CONCURRENCY:
        raise ValidationError(f"Unknown batch type: {batch_type}")
    if config.get("type") != batch_type:
        raise ValidationError(f"Config type '{config.get('type')}' does not match batch type '{batch_type}'")
    _validate_items(batch_type, items)

    if not name:
        name = f"{batch_type.capitalize()} batch {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M')}"

    batch = BatchJob(
        user_id=user_id,
        type=batch_type,
        name=name,
        status="pending",
        total_count=len(items),
        completed_count=0,
        failed_count=0,
        config=config
    )
    for index, item in enumerate(items):
        row = {key: item.get(key) for key in ITEM_FIELDS if item.get(key) is not None}
        batch.items.append(BatchJobItem(item_index=index, status="pending", config=row))

    db.add(batch)
    db.commit()
    db.refresh(batch)
    batch_logger.info(f"Created {batch_type} batch {batch.id} with {batch.total_count} items for user {user_id}")
    return batch


def get_owned_batch(db: Session, batch_id: int, user_id: int) -> BatchJob:
    batch = db.query(BatchJob).filter(BatchJob.id == batch_id, BatchJob.user_id == user_id).first()
    if not batch:
        raise NotFound("Batch not found")
    return batch


def list_batches(db: Session, user_id: int, limit: int = 50) -> List[BatchJob]:
    """Most recent batches first"""
    return (
        db.query(BatchJob)
        .filter(BatchJob.user_id == user_id)
        .order_by(BatchJob.created_at.desc(), BatchJob.id.desc())
        .limit(limit)
        .all()
    )


def batch_progress(batch: BatchJob) -> int:
    if not batch.total_count:
        return 0
    return (batch.completed_count + batch.failed_count) * 100 // batch.total_count


def _count_processing(db: Session, batch_id: int) -> int:
    return db.query(func.count(BatchJobItem.id)).filter(
        BatchJobItem.batch_job_id == batch_id,
        BatchJobItem.status == "processing"
    ).scalar()


def _abandon_video(db: Session, video_id: int) -> None:
    """Cancel a draft video whose item was cancelled before it was submitted"""
    try:
        transition(
            db, Video, video_id, ["draft"], "cancelled",
            progress=0,
            progress_message="cancelled before dispatch"
        )
        batch_logger.info(f"Video {video_id} cancelled before dispatch")
    except InvalidTransition:
        batch_logger.debug(f"Video {video_id} already left draft")


def _dispatch_item(db: Session, batch: BatchJob, item: BatchJobItem) -> bool:
    """Claim one pending item and start its generation job

    Returns False if another dispatcher already claimed the item. Nothing is
    submitted once the batch or the item has been cancelled.
    """
    try:
        transition(db, BatchJobItem, item.id, ["pending"], "processing")
    except InvalidTransition:
        batch_logger.debug(f"Batch item {item.id} already claimed")
        return False

    item_config = dict(item.config or {})
    job_config = {**(batch.config or {}), **item_config}

    video = create_video(
        db,
        batch.user_id,
        title=item_config.get("title"),
        product_id=item_config.get("product_id"),
        generation_type=batch.type
    )

    batch_status = db.query(BatchJob.status).filter(BatchJob.id == batch.id).scalar()
    if batch_status != "processing":
        _abandon_video(db, video.id)
        try:
            _resolve_item(db, item.id, success=False, error=CANCELLED_ITEM_ERROR)
        except InvalidTransition:
            batch_logger.debug(f"Batch item {item.id} already failed by cancellation")
        return True

    linked = db.execute(
        update(BatchJobItem)
        .where(BatchJobItem.id == item.id, BatchJobItem.status == "processing")
        .values(video_id=video.id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if linked.rowcount != 1:
        batch_logger.info(f"Batch item {item.id} resolved before its video was linked")
        _abandon_video(db, video.id)
        return True

    try:
        video = dispatch_generation(db, video, job_config)
    except InvalidTransition:
        # cancel_batch cancelled the linked draft and failed the item
        batch_logger.info(f"Video {video.id} cancelled before submit")
        return True

    if video.status == "failed":
        # Rejected on submit; resolve here, the caller keeps dispatching
        _resolve_item(db, item.id, success=False, error=video.error_message)
    return True


def _lock_ttl() -> int:
    # One provider submit plus its writes; renewed before each item
    return settings.BATCH_DISPATCH_LOCK_TIMEOUT + int(PROVIDER_TIMEOUT_SECONDS)


def _fill_slots(db: Session, batch_id: int, lock_key: str, token: str) -> int:
    dispatched = 0
    while True:
        db.expire_all()
        batch = db.get(BatchJob, batch_id)
        if batch is None or batch.status not in ("pending", "processing"):
            return dispatched

        ceiling = BATCH_CONCURRENCY.get(batch.type, 1)
        slots = ceiling - _count_processing(db, batch_id)
        if slots <= 0:
            return dispatched

        pending = (
            db.query(BatchJobItem)
            .filter(BatchJobItem.batch_job_id == batch_id, BatchJobItem.status == "pending")
            .order_by(BatchJobItem.item_index)
            .limit(slots)
            .all()
        )
        if not pending:
            return dispatched

        if batch.status == "pending":
            try:
                transition(
                    db, BatchJob, batch_id, ["pending"], "processing",
                    started_at=datetime.now(timezone.utc)
                )
            except InvalidTransition:
                # Cancelled between the read and the claim
                return dispatched
            batch_logger.info(f"Batch {batch_id} started")

        for item in pending:
            if not extend_lock(lock_key, token, _lock_ttl()):
                batch_logger.warning(f"Lost dispatch lock for batch {batch_id}, stopping")
                return dispatched
            if _dispatch_item(db, batch, item):
                dispatched += 1


def dispatch_next(db: Session, batch_id: int) -> int:
    """Dispatch pending items up to the batch type's concurrency ceiling.

    Runs under a per-batch Redis lock so concurrent resolutions of the same
    batch cannot both fill the same free slot. Every call first raises a
    redispatch flag; a caller that finds the lock held returns at once, and
    the holder re-checks the flag after releasing, so a slot freed while it
    was dispatching is still refilled.

    Returns:
        Number of items claimed by this call
    """
    lock_key = f"batch_dispatch:{batch_id}"
    flag_key = f"batch_redispatch:{batch_id}"
    raise_flag(flag_key, _lock_ttl())

    dispatched = 0
    while True:
        with distributed_lock(lock_key, timeout=_lock_ttl()) as token:
            if token is None:
                batch_logger.debug(f"Dispatch for batch {batch_id} already running")
                return dispatched
            take_flag(flag_key)
            dispatched += _fill_slots(db, batch_id, lock_key, token)

        if not take_flag(flag_key):
            return dispatched


def _finalize_batch(db: Session, batch_id: int) -> bool:
    """Close the batch once every item is terminal

    Single conditional update: completed unless every item failed.
    """
    check_transition(BatchJob, ["processing"], "completed")
    check_transition(BatchJob, ["processing"], "failed")

    result = db.execute(
        update(BatchJob)
        .where(
            BatchJob.id == batch_id,
            BatchJob.status == "processing",
            BatchJob.completed_count + BatchJob.failed_count >= BatchJob.total_count
        )
        .values(
            status=case(
                (BatchJob.failed_count >= BatchJob.total_count, "failed"),
                else_="completed"
            ),
            completed_at=datetime.now(timezone.utc)
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 1:
        status = db.query(BatchJob.status).filter(BatchJob.id == batch_id).scalar()
        batch_logger.info(f"Batch {batch_id} finished: {status}")
        return True
    return False


def _resolve_item(
    db: Session,
    item_id: int,
    success: bool,
    error: Optional[str] = None,
    from_statuses: Iterable[str] = ("processing",)
) -> BatchJobItem:
    """Move an item to its terminal status and bump the batch counter in one transaction

    Raises:
        InvalidTransition: The item was already resolved
    """
    item = db.get(BatchJobItem, item_id)
    if item is None:
        raise NotFound("Batch item not found")
    batch_id = item.batch_job_id
    now = datetime.now(timezone.utc)

    if success:
        transition(db, BatchJobItem, item_id, from_statuses, "completed", commit=False, completed_at=now)
        counter = {"completed_count": BatchJob.completed_count + 1}
    else:
        transition(
            db, BatchJobItem, item_id, from_statuses, "failed", commit=False,
            completed_at=now,
            error_message=error or "Generation failed"
        )
        counter = {"failed_count": BatchJob.failed_count + 1}

    db.execute(
        update(BatchJob)
        .where(BatchJob.id == batch_id)
        .values(**counter)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    batch_logger.info(f"Batch {batch_id} item {item_id} {'completed' if success else 'failed'}")

    _finalize_batch(db, batch_id)
    db.refresh(item)
    return item


def on_item_resolved(db: Session, item_id: int, success: bool, error: Optional[str] = None) -> BatchJobItem:
    """Record an item's outcome, then fill the freed slot"""
    item = _resolve_item(db, item_id, success=success, error=error)
    dispatch_next(db, item.batch_job_id)
    return item


def on_video_resolved(db: Session, video_id: int, success: bool, error: Optional[str] = None) -> Optional[BatchJobItem]:
    """Propagate a video's terminal status to the batch item generating it, if any"""
    item = db.query(BatchJobItem).filter(
        BatchJobItem.video_id == video_id,
        BatchJobItem.status == "processing"
    ).first()
    if item is None:
        return None

    try:
        return on_item_resolved(db, item.id, success=success, error=error)
    except InvalidTransition:
        batch_logger.info(f"Batch item {item.id} was already resolved")
        return None


def active_items(db: Session, batch_id: int) -> List[BatchJobItem]:
    return (
        db.query(BatchJobItem)
        .filter(
            BatchJobItem.batch_job_id == batch_id,
            BatchJobItem.status.in_(("pending", "processing"))
        )
        .order_by(BatchJobItem.item_index)
        .all()
    )


def batches_awaiting_dispatch(db: Session) -> List[int]:
    """Processing batches that still have pending items"""
    rows = db.query(BatchJob.id).filter(
        BatchJob.status == "processing",
        BatchJob.items.any(BatchJobItem.status == "pending")
    ).order_by(BatchJob.id).all()
    return [row.id for row in rows]
