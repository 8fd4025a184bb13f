"""HeyGen avatar video adapter

Docs: https://docs.heygen.com/reference
"""

from typing import Any, Dict, Optional, Tuple

from reelflow.core.config import HEYGEN_GENERATE_URL, HEYGEN_STATUS_URL
from reelflow.core.errors import AdapterError, ProviderFailure
from reelflow.services.generation.base import GenerationAdapter, GenerationResult, generation_logger

# TikTok is portrait
HEYGEN_DIMENSION = {"width": 1080, "height": 1920}
HEYGEN_DEFAULT_BACKGROUND = {"type": "color", "value": "#1a1a2e"}


def _error_text(error: Any) -> str:
    if isinstance(error, dict):
        return error.get("message") or error.get("detail") or str(error)
    return str(error) if error else "Unknown error"


class HeyGenAdapter(GenerationAdapter):
    """Talking-avatar videos from a script"""

    provider = "heygen"

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "X-Api-Key": self.api_key}

    def build_payload(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Build the /v2/video/generate body from avatar_id, voice_id, background_url, script"""
        if not config.get("avatar_id"):
            raise AdapterError("avatar_id is required for HeyGen", provider=self.provider)
        if not config.get("script"):
            raise AdapterError("script is required for HeyGen", provider=self.provider)

        video_input = {
            "character": {
                "type": "avatar",
                "avatar_id": config["avatar_id"],
                "avatar_style": "normal",
            },
            "background": (
                {"type": "image", "url": config["background_url"]}
                if config.get("background_url") else HEYGEN_DEFAULT_BACKGROUND
            ),
        }
        if config.get("voice_id"):
            video_input["voice"] = {
                "type": "text",
                "input_text": config["script"],
                "voice_id": config["voice_id"],
            }

        return {
            "video_inputs": [video_input],
            "dimension": HEYGEN_DIMENSION,
        }

    def submit(self, config: Dict[str, Any]) -> str:
        data = self._request("POST", HEYGEN_GENERATE_URL, json=self.build_payload(config))
        if data.get("error"):
            raise AdapterError(f"HeyGen rejected the request: {_error_text(data['error'])}", provider=self.provider)

        video_id = (data.get("data") or {}).get("video_id")
        if not video_id:
            raise AdapterError(f"HeyGen response missing video_id. Keys: {list(data.keys())}", provider=self.provider)

        generation_logger.info(f"HeyGen job submitted: {video_id}")
        return video_id

    def _parse_status(self, status_data: Dict[str, Any]) -> Optional[GenerationResult]:
        status = status_data.get("status")
        if status == "completed":
            video_url = status_data.get("video_url")
            if not video_url:
                raise ProviderFailure("HeyGen reported completion without a video URL")
            return GenerationResult(success=True, result_url=video_url)
        if status == "failed":
            raise ProviderFailure(f"HeyGen generation failed: {_error_text(status_data.get('error'))}")
        # pending, waiting, processing
        return None

    def fetch_result(self, job_id: str) -> Optional[GenerationResult]:
        data = self._request("GET", HEYGEN_STATUS_URL, params={"video_id": job_id})
        try:
            return self._parse_status(data.get("data") or {})
        except ProviderFailure as e:
            return GenerationResult(success=False, reason=e.message)

    def normalize_callback(self, payload: Dict[str, Any]) -> Tuple[str, Optional[GenerationResult]]:
        """HeyGen webhook: {"event_type": "avatar_video.success" | "avatar_video.fail", "event_data": {...}}"""
        event_type = payload.get("event_type")
        event_data = payload.get("event_data") or {}
        job_id = event_data.get("video_id")
        if not job_id:
            raise AdapterError("HeyGen callback missing event_data.video_id", provider=self.provider)

        if event_type == "avatar_video.success":
            status_data = {"status": "completed", "video_url": event_data.get("url")}
        elif event_type == "avatar_video.fail":
            status_data = {"status": "failed", "error": event_data.get("msg")}
        else:
            return job_id, None

        try:
            return job_id, self._parse_status(status_data)
        except ProviderFailure as e:
            return job_id, GenerationResult(success=False, reason=e.message)
