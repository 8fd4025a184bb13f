"""Video model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from reelflow.models.base import Base


class Video(Base):
    """Generated video and its generation/publish lifecycle"""
    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), nullable=True)  # Opaque reference into the product catalogue
    title = Column(String(255), nullable=True)
    generation_type = Column(String(20), nullable=True)  # heygen, kling
    status = Column(String(20), default="draft", nullable=False)  # draft, generating, ready, posting, posted, failed, cancelled
    progress = Column(Integer, default=0, nullable=False)  # 0-100, only written with a status transition
    progress_message = Column(Text, nullable=True)
    remote_url = Column(Text, nullable=True)  # Set on transition into ready
    error_message = Column(Text, nullable=True)
    provider_job_id = Column(String(128), nullable=True, index=True)
    generation_started_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    user = relationship("User", back_populates="videos")
    tiktok_posts = relationship("TikTokPost", back_populates="video", cascade="all, delete-orphan")

    __table_args__ = (
        Index('ix_videos_user_status', 'user_id', 'status'),
        Index('ix_videos_type_job', 'generation_type', 'provider_job_id'),
    )
