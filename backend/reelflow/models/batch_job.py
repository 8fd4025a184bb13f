"""Batch generation models"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from reelflow.models.base import Base


class BatchJob(Base):
    """A CSV of items fanned out into one generation job per item"""
    __tablename__ = "batch_jobs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # heygen, kling
    name = Column(String(200), nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed, cancelled
    total_count = Column(Integer, nullable=False)
    completed_count = Column(Integer, default=0, nullable=False)  # Only ever incremented
    failed_count = Column(Integer, default=0, nullable=False)  # Only ever incremented
    config = Column(JSON, nullable=False)  # Provider parameters shared by all items
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="batch_jobs")
    items = relationship(
        "BatchJobItem",
        back_populates="batch_job",
        cascade="all, delete-orphan",
        order_by="BatchJobItem.item_index"
    )

    __table_args__ = (
        Index('ix_batch_jobs_user_created', 'user_id', 'created_at'),
    )


class BatchJobItem(Base):
    """One CSV row, tracked through its own generation lifecycle"""
    __tablename__ = "batch_job_items"

    id = Column(Integer, primary_key=True, index=True)
    batch_job_id = Column(Integer, ForeignKey("batch_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    item_index = Column(Integer, nullable=False)  # CSV row order
    status = Column(String(20), default="pending", nullable=False)  # pending, processing, completed, failed
    video_id = Column(Integer, ForeignKey("videos.id", ondelete="SET NULL"), nullable=True, index=True)  # Non-owning
    config = Column(JSON, nullable=False)  # title, script | prompt, image_url, product_id
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    batch_job = relationship("BatchJob", back_populates="items")
    video = relationship("Video")

    __table_args__ = (
        Index('ix_batch_job_items_batch_status', 'batch_job_id', 'status'),
    )
