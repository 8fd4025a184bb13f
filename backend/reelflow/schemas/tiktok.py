"""Pydantic schemas for TikTok publishing"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

PrivacyLevel = Literal["PUBLIC_TO_EVERYONE", "MUTUAL_FOLLOW_FRIENDS", "SELF_ONLY"]


class PostToTikTokRequest(BaseModel):
    video_id: int
    account_id: int
    caption: str = Field(default="", max_length=2200)
    hashtags: List[str] = Field(default_factory=list, max_length=30)
    privacy_level: PrivacyLevel = "PUBLIC_TO_EVERYONE"


class PostToTikTokResponse(BaseModel):
    post_id: int
    status: str


class PostStatusResponse(BaseModel):
    id: int
    status: str
    progress: int
    public_video_id: Optional[str] = None
    error_message: Optional[str] = None
    posted_at: Optional[datetime] = None
    should_continue_polling: bool
