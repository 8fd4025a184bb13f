"""Generation provider registry"""

from typing import Optional

import httpx

from reelflow.core.config import settings
from reelflow.core.errors import ValidationError
from reelflow.services.generation.base import GenerationAdapter
from reelflow.services.generation.heygen import HeyGenAdapter
from reelflow.services.generation.kling import KlingAdapter

GENERATION_ADAPTERS = {
    "heygen": HeyGenAdapter,
    "kling": KlingAdapter,
}

API_KEYS = {
    "heygen": lambda: settings.HEYGEN_API_KEY,
    "kling": lambda: settings.KLING_API_KEY,
}


def get_generation_adapter(provider: str, client: Optional[httpx.Client] = None) -> GenerationAdapter:
    """Return the adapter for a config's type tag

    Raises:
        ValidationError: Unknown provider
    """
    adapter_cls = GENERATION_ADAPTERS.get(provider)
    if adapter_cls is None:
        raise ValidationError(f"Unknown generation provider: {provider}")
    return adapter_cls(api_key=API_KEYS[provider](), client=client)
