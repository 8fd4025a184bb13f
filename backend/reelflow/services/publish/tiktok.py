"""TikTok direct-post adapter - init a PULL_FROM_URL publish and poll its status"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from reelflow.core.config import PROVIDER_TIMEOUT_SECONDS, TIKTOK_INIT_UPLOAD_URL, TIKTOK_STATUS_URL
from reelflow.core.errors import AdapterError, ProviderFailure

publish_logger = logging.getLogger("publish")

TIKTOK_TITLE_MAX_LENGTH = 2200

# Non-terminal publish states reported by the status endpoint
TIKTOK_IN_PROGRESS_STATES = {"PROCESSING_UPLOAD", "PROCESSING_DOWNLOAD", "SEND_TO_USER_INBOX"}


@dataclass(frozen=True)
class PublishRequest:
    video_url: str
    caption: str = ""
    hashtags: List[str] = field(default_factory=list)
    privacy_level: str = "PUBLIC_TO_EVERYONE"


@dataclass(frozen=True)
class PublishResult:
    """Normalized terminal outcome of a publish job"""
    success: bool
    public_id: Optional[str] = None
    reason: Optional[str] = None


def build_title(caption: str, hashtags: List[str]) -> str:
    """Caption followed by #tags, trimmed to TikTok's title limit"""
    tags = " ".join(f"#{tag.lstrip('#')}" for tag in hashtags if tag.strip())
    title = f"{caption} {tags}".strip() if tags else caption.strip()
    return title[:TIKTOK_TITLE_MAX_LENGTH]


class TikTokPublishAdapter:
    """Uniform submit / fetch_result contract over the TikTok Content Posting API"""

    provider = "tiktok"

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client

    def _post(self, url: str, access_token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=UTF-8"
        }
        try:
            if self._client is not None:
                response = self._client.post(url, headers=headers, json=payload, timeout=PROVIDER_TIMEOUT_SECONDS)
            else:
                response = httpx.post(url, headers=headers, json=payload, timeout=PROVIDER_TIMEOUT_SECONDS)
        except httpx.TimeoutException as e:
            publish_logger.warning(f"TikTok request timed out: {url}")
            raise AdapterError(
                f"TikTok request timed out after {PROVIDER_TIMEOUT_SECONDS}s", provider=self.provider, timeout=True
            ) from e
        except httpx.HTTPError as e:
            raise AdapterError(f"TikTok request failed: {e}", provider=self.provider) from e

        try:
            data = response.json()
        except ValueError as e:
            raise AdapterError(
                f"TikTok returned HTTP {response.status_code} with a non-JSON body", provider=self.provider
            ) from e

        # TikTok always sends an error object; code "ok" means success
        error_info = data.get("error") or {}
        if response.status_code != 200 or error_info.get("code", "ok") != "ok":
            publish_logger.warning(
                f"TikTok API error: HTTP {response.status_code} - "
                f"{error_info.get('code', 'unknown')} - {error_info.get('message', 'unknown error')}"
            )
            raise AdapterError(
                f"TikTok API error: {error_info.get('code', response.status_code)} - "
                f"{error_info.get('message', 'unknown error')}",
                provider=self.provider
            )
        return data.get("data") or {}

    def submit(self, access_token: str, request: PublishRequest) -> str:
        """Start a publish job; returns TikTok's publish_id

        Raises:
            AdapterError: Rejected (bad token, unaudited app, bad URL...) or timed out
        """
        if not access_token:
            raise AdapterError("TikTok account has no access token", provider=self.provider)
        if not request.video_url:
            raise AdapterError("Video URL is not available", provider=self.provider)

        payload = {
            "post_info": {
                "title": build_title(request.caption, request.hashtags),
                "privacy_level": request.privacy_level,
                "disable_duet": False,
                "disable_comment": False,
                "disable_stitch": False,
            },
            "source_info": {
                "source": "PULL_FROM_URL",
                "video_url": request.video_url,
            },
        }
        data = self._post(TIKTOK_INIT_UPLOAD_URL, access_token, payload)
        publish_id = data.get("publish_id")
        if not publish_id:
            raise AdapterError("TikTok init response missing publish_id", provider=self.provider)

        publish_logger.info(f"TikTok publish submitted: {publish_id}")
        return publish_id

    def _parse_status(self, publish_id: str, status_data: Dict[str, Any]) -> Optional[PublishResult]:
        status = status_data.get("status", "UNKNOWN")
        if status == "PUBLISH_COMPLETE":
            post_ids = status_data.get("publicaly_available_post_id") or []
            public_id = (
                str(post_ids[0]) if post_ids
                else status_data.get("public_video_id") or status_data.get("video_id") or publish_id
            )
            return PublishResult(success=True, public_id=str(public_id))
        if status == "FAILED":
            raise ProviderFailure(f"TikTok publish failed: {status_data.get('fail_reason') or 'unknown reason'}")
        if status not in TIKTOK_IN_PROGRESS_STATES:
            publish_logger.debug(f"Unrecognized TikTok publish status for {publish_id}: {status}")
        return None

    def fetch_result(self, access_token: str, publish_id: str) -> Optional[PublishResult]:
        """Poll a publish job; None while TikTok is still processing it"""
        data = self._post(TIKTOK_STATUS_URL, access_token, {"publish_id": publish_id})
        try:
            return self._parse_status(publish_id, data)
        except ProviderFailure as e:
            return PublishResult(success=False, reason=e.message)
