"""Social publishing adapters - public API exports"""

from reelflow.services.publish.tiktok import (
    PublishRequest,
    PublishResult,
    TikTokPublishAdapter,
    build_title,
)

__all__ = [
    "PublishRequest",
    "PublishResult",
    "TikTokPublishAdapter",
    "build_title",
]
