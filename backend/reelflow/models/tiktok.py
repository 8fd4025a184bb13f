"""TikTok account and post models"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from reelflow.models.base import Base


class TikTokAccount(Base):
    """Connected TikTok account (tokens are maintained by the OAuth flow)"""
    __tablename__ = "tiktok_accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    open_id = Column(String(128), nullable=False)
    display_name = Column(String(255), nullable=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", back_populates="tiktok_accounts")
    posts = relationship("TikTokPost", back_populates="account")


class TikTokPost(Base):
    """Publish-side record; progress is derived from status, never stored"""
    __tablename__ = "tiktok_posts"

    id = Column(Integer, primary_key=True, index=True)
    video_id = Column(Integer, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    tiktok_account_id = Column(Integer, ForeignKey("tiktok_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    publish_id = Column(String(128), nullable=True)
    public_video_id = Column(String(128), nullable=True)  # Set on completion
    caption = Column(Text, nullable=False, default="")
    hashtags = Column(JSON, default=list)
    privacy_level = Column(String(40), nullable=False, default="PUBLIC_TO_EVERYONE")
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    video = relationship("Video", back_populates="tiktok_posts")
    account = relationship("TikTokAccount", back_populates="posts")
