"""Video-synthesis provider adapters - public API exports"""

from reelflow.services.generation.base import GenerationAdapter, GenerationResult
from reelflow.services.generation.heygen import HeyGenAdapter
from reelflow.services.generation.kling import KlingAdapter
from reelflow.services.generation.registry import GENERATION_ADAPTERS, get_generation_adapter

__all__ = [
    "GenerationAdapter",
    "GenerationResult",
    "HeyGenAdapter",
    "KlingAdapter",
    "GENERATION_ADAPTERS",
    "get_generation_adapter",
]
