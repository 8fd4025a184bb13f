"""Provider webhook routes"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from reelflow.core.security import verify_callback_token
from reelflow.db.session import get_db
from reelflow.services.video_service import handle_generation_callback

generation_logger = logging.getLogger("generation")

router = APIRouter(prefix="/api/callbacks", tags=["callbacks"])


@router.post("/generation/{provider}", dependencies=[Depends(verify_callback_token)])
def generation_callback(
    provider: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db)
):
    """Resolve the video that owns the job a provider reports on

    Late callbacks for videos that already left generating answer 200 with
    status "ignored" so the provider stops retrying.
    """
    outcome = handle_generation_callback(db, provider, payload)
    generation_logger.debug(f"{provider} callback: {outcome}")
    return {"status": outcome}
