"""Videos API routes - single generation, batches, status and cancellation"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reelflow.core.security import require_auth
from reelflow.db.session import get_db
from reelflow.schemas.video import (
    BatchStatusResponse,
    BatchSummary,
    CancelResponse,
    CreateBatchRequest,
    CreateBatchResponse,
    CreateVideoRequest,
    VideoStatusResponse,
)
from reelflow.services.batch_service import create_batch, dispatch_next, list_batches, validate_item
from reelflow.services.cancellation import cancel_batch, cancel_video
from reelflow.services.status_service import batch_summary, get_batch_status, get_video_status, video_status
from reelflow.services.video_service import start_generation

router = APIRouter(prefix="/api/videos", tags=["videos"])


@router.post("", status_code=201, response_model=VideoStatusResponse)
def create_video_route(
    request: CreateVideoRequest,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Create a single video and dispatch its generation job"""
    fields = request.model_dump(exclude={"config"}, exclude_none=True)
    validate_item(request.config.type, fields, label="Video")

    config = {**request.config.model_dump(exclude_none=True), **fields}
    video = start_generation(
        db,
        user_id,
        config,
        title=request.title,
        product_id=request.product_id
    )
    return video_status(video)


@router.post("/batch", status_code=201, response_model=CreateBatchResponse)
def create_batch_route(
    request: CreateBatchRequest,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Create a batch from parsed CSV rows and dispatch its first items"""
    batch = create_batch(
        db,
        user_id,
        request.type,
        request.config.model_dump(exclude_none=True),
        [item.model_dump(exclude_none=True) for item in request.items],
        name=request.name
    )
    dispatch_next(db, batch.id)
    db.refresh(batch)
    return {"batch_job": {"id": batch.id, "total_count": batch.total_count, "status": batch.status}}


@router.get("/batch", response_model=List[BatchSummary])
def list_batches_route(
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """50 most recent batches"""
    return [batch_summary(batch) for batch in list_batches(db, user_id)]


@router.get("/batch/{batch_id}", response_model=BatchStatusResponse)
def get_batch_route(
    batch_id: int,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    return get_batch_status(db, batch_id, user_id)


@router.post("/batch/{batch_id}/cancel", response_model=CancelResponse)
def cancel_batch_route(
    batch_id: int,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    cancel_batch(db, batch_id, user_id)
    return CancelResponse(success=True, message="Batch cancelled")


@router.get("/{video_id}/status", response_model=VideoStatusResponse)
def get_video_status_route(
    video_id: int,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    return get_video_status(db, video_id, user_id)


@router.post("/{video_id}/cancel", response_model=CancelResponse)
def cancel_video_route(
    video_id: int,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Cancel a video that is still generating"""
    cancel_video(db, video_id, user_id)
    return CancelResponse(success=True, message="Video generation cancelled")
