"""Status state machines and the atomic transition operation

Every status change of a video, post, batch or batch item goes through
transition(). The write is a single conditional UPDATE filtered on the
expected source statuses, so the database row is the serialization point:
two racing attempts cannot both succeed, and a reader never sees a status
without the fields written alongside it.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Type

from sqlalchemy import update
from sqlalchemy.orm import Session

from reelflow.core.errors import InvalidTransition, ValidationError
from reelflow.core.metrics import rejected_transitions_counter
from reelflow.models.base import Base
from reelflow.models.batch_job import BatchJob, BatchJobItem
from reelflow.models.tiktok import TikTokPost
from reelflow.models.video import Video

logger = logging.getLogger(__name__)

# Allowed moves, keyed by table name: {from_status: {to_status, ...}}
TRANSITIONS: Dict[str, Dict[str, set]] = {
    "videos": {
        "draft": {"generating", "cancelled"},
        "generating": {"ready", "failed", "cancelled"},
        "ready": {"posting"},
        "posting": {"posted", "failed"},
    },
    "tiktok_posts": {
        "pending": {"processing", "failed"},
        "processing": {"completed", "failed"},
    },
    "batch_job_items": {
        "pending": {"processing", "failed"},
        "processing": {"completed", "failed"},
    },
    "batch_jobs": {
        "pending": {"processing", "cancelled"},
        "processing": {"completed", "failed", "cancelled"},
    },
}

TERMINAL_STATUSES: Dict[str, frozenset] = {
    "videos": frozenset({"posted", "failed", "cancelled"}),
    "tiktok_posts": frozenset({"completed", "failed"}),
    "batch_job_items": frozenset({"completed", "failed"}),
    "batch_jobs": frozenset({"completed", "failed", "cancelled"}),
}

# Fields a target status cannot be entered without
REQUIRED_FIELDS: Dict[str, Dict[str, tuple]] = {
    "videos": {"ready": ("remote_url",), "failed": ("error_message",)},
    "tiktok_posts": {"completed": ("public_video_id",), "failed": ("error_message",)},
    "batch_job_items": {"failed": ("error_message",)},
}

VIDEO_DEFAULT_MESSAGES = {
    "draft": "draft",
    "generating": "generating",
    "ready": "done",
    "posting": "posting",
    "posted": "posted",
    "failed": "failed",
    "cancelled": "cancelled",
}

POST_STATUS_PROGRESS = {
    "pending": 0,
    "processing": 50,
    "completed": 100,
    "failed": 0,
}

ENTITY_LABELS = {
    Video: "video",
    TikTokPost: "post",
    BatchJob: "batch",
    BatchJobItem: "batch item",
}


def is_terminal(model: Type[Base], status: str) -> bool:
    """True if no further automatic transition leaves this status"""
    return status in TERMINAL_STATUSES[model.__tablename__]


def default_video_message(status: str) -> str:
    return VIDEO_DEFAULT_MESSAGES.get(status, "")


def post_progress(status: str) -> int:
    """Post progress is a pure function of its status"""
    return POST_STATUS_PROGRESS.get(status, 0)


def check_transition(model: Type[Base], from_statuses: Iterable[str], to_status: str) -> None:
    """Raise InvalidTransition if any (from, to) pair is outside the model's table"""
    table = TRANSITIONS[model.__tablename__]
    label = ENTITY_LABELS.get(model, model.__tablename__)
    for from_status in from_statuses:
        if to_status not in table.get(from_status, set()):
            raise InvalidTransition(f"Cannot move {label} from '{from_status}' to '{to_status}'")


def transition(
    db: Session,
    model: Type[Base],
    entity_id: int,
    from_statuses: Iterable[str],
    to_status: str,
    commit: bool = True,
    **fields: Any
) -> None:
    """Atomically move an entity from one of from_statuses to to_status.

    Args:
        db: Database session
        model: Mapped class (Video, TikTokPost, BatchJob, BatchJobItem)
        entity_id: Primary key of the row
        from_statuses: Statuses the row is expected to be in
        to_status: Target status
        commit: Commit on success. Pass False to fold further writes into the same
            transaction; the caller then commits.
        **fields: Columns written in the same statement (progress, message, url, error...)

    Raises:
        InvalidTransition: If the move is not in the table, or the row's current
            status is no longer one of from_statuses (a racing transition won).
            Nothing is written in either case.
        ValidationError: If a field required by the target status is missing.
    """
    from_statuses = tuple(from_statuses)
    check_transition(model, from_statuses, to_status)

    required = REQUIRED_FIELDS.get(model.__tablename__, {}).get(to_status, ())
    missing = [name for name in required if not fields.get(name)]
    if missing:
        raise ValidationError(f"Status '{to_status}' requires {', '.join(missing)}")

    stmt = (
        update(model)
        .where(model.id == entity_id, model.status.in_(from_statuses))
        .values(status=to_status, **fields)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)

    if result.rowcount != 1:
        db.rollback()
        current: Optional[str] = db.query(model.status).filter(model.id == entity_id).scalar()
        label = ENTITY_LABELS.get(model, model.__tablename__)
        rejected_transitions_counter.labels(entity=label).inc()
        logger.info(
            f"Rejected {label} {entity_id} transition to '{to_status}': "
            f"expected one of {list(from_statuses)}, found '{current}'"
        )
        raise InvalidTransition(
            f"Cannot move {label} {entity_id} to '{to_status}' from current status '{current}'",
            current_status=current
        )

    if commit:
        db.commit()
    logger.debug(f"{model.__tablename__} {entity_id}: {list(from_statuses)} -> {to_status}")
