"""TikTok publishing routes"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reelflow.core.security import require_auth
from reelflow.db.session import get_db
from reelflow.schemas.tiktok import PostStatusResponse, PostToTikTokRequest, PostToTikTokResponse
from reelflow.services.post_service import request_publish
from reelflow.services.status_service import get_post_status

router = APIRouter(prefix="/api/tiktok", tags=["tiktok"])


@router.post("/post", status_code=201, response_model=PostToTikTokResponse)
def post_to_tiktok(
    request: PostToTikTokRequest,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Publish a ready video to a connected TikTok account"""
    post = request_publish(
        db,
        user_id,
        request.video_id,
        request.account_id,
        caption=request.caption,
        hashtags=request.hashtags,
        privacy_level=request.privacy_level
    )
    return PostToTikTokResponse(post_id=post.id, status=post.status)


@router.get("/post/{post_id}", response_model=PostStatusResponse)
def get_post(
    post_id: int,
    user_id: int = Depends(require_auth),
    db: Session = Depends(get_db)
):
    return get_post_status(db, post_id, user_id)
