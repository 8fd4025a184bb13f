"""Abstract base class for video-synthesis provider adapters"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from reelflow.core.config import PROVIDER_TIMEOUT_SECONDS
from reelflow.core.errors import AdapterError

generation_logger = logging.getLogger("generation")


@dataclass(frozen=True)
class GenerationResult:
    """Normalized terminal outcome of a generation job"""
    success: bool
    result_url: Optional[str] = None
    reason: Optional[str] = None


class GenerationAdapter(ABC):
    """Interface contract for video-synthesis providers.

    Orchestration only talks to this interface; adding a provider means adding
    a subclass and registering it in registry.py.
    """

    provider: str = ""

    def __init__(self, api_key: str, client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self._client = client

    @abstractmethod
    def submit(self, config: Dict[str, Any]) -> str:
        """Start a generation job.

        Args:
            config: Batch-level provider parameters merged with the item's parameters

        Returns:
            Provider job id

        Raises:
            AdapterError: Provider rejected the request, or the call timed out
        """
        pass

    @abstractmethod
    def fetch_result(self, job_id: str) -> Optional[GenerationResult]:
        """Poll a job.

        Returns:
            GenerationResult once the job is terminal, None while it is still running

        Raises:
            AdapterError: Status endpoint unreachable or returned garbage
        """
        pass

    @abstractmethod
    def normalize_callback(self, payload: Dict[str, Any]) -> Tuple[str, Optional[GenerationResult]]:
        """Translate a provider webhook body into (job_id, result or None)

        Raises:
            AdapterError: Payload is not a recognizable callback
        """
        pass

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Send one request with a bounded timeout and return the decoded JSON body

        Every failure mode (missing key, timeout, transport error, non-2xx,
        non-JSON) surfaces as AdapterError.
        """
        if not self.api_key:
            raise AdapterError(f"{self.provider} API key is not configured", provider=self.provider)

        try:
            if self._client is not None:
                response = self._client.request(
                    method, url, headers=self._headers(), timeout=PROVIDER_TIMEOUT_SECONDS, **kwargs
                )
            else:
                response = httpx.request(
                    method, url, headers=self._headers(), timeout=PROVIDER_TIMEOUT_SECONDS, **kwargs
                )
        except httpx.TimeoutException as e:
            generation_logger.warning(f"{self.provider} request timed out: {method} {url}")
            raise AdapterError(
                f"{self.provider} request timed out after {PROVIDER_TIMEOUT_SECONDS}s",
                provider=self.provider, timeout=True
            ) from e
        except httpx.HTTPError as e:
            raise AdapterError(f"{self.provider} request failed: {e}", provider=self.provider) from e

        if response.status_code >= 400:
            generation_logger.warning(
                f"{self.provider} API error: HTTP {response.status_code} - {response.text[:200]}"
            )
            raise AdapterError(
                f"{self.provider} API error: HTTP {response.status_code} - {response.text[:200]}",
                provider=self.provider
            )

        try:
            return response.json()
        except ValueError as e:
            raise AdapterError(f"{self.provider} returned a non-JSON response", provider=self.provider) from e
