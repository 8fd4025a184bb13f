"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from reelflow.models.base import Base
from reelflow.models.user import User
from reelflow.models.video import Video
from reelflow.models.batch_job import BatchJob, BatchJobItem
from reelflow.models.tiktok import TikTokAccount, TikTokPost

# Export all for convenience
__all__ = [
    "Base", "User", "Video", "BatchJob", "BatchJobItem",
    "TikTokAccount", "TikTokPost"
]
