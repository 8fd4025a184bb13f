"""Kling video adapter (via PiAPI)

Image-to-video when the item carries an image_url, text-to-video otherwise.
"""

from typing import Any, Dict, Optional, Tuple

from reelflow.core.config import KLING_TASK_URL
from reelflow.core.errors import AdapterError, ProviderFailure
from reelflow.services.generation.base import GenerationAdapter, GenerationResult, generation_logger


class KlingAdapter(GenerationAdapter):
    """Prompt / image driven product videos"""

    provider = "kling"

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "x-api-key": self.api_key}

    def build_payload(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Build the /api/v1/task body from prompt, image_url and the batch parameters"""
        if not config.get("prompt") and not config.get("image_url"):
            raise AdapterError("prompt or image_url is required for Kling", provider=self.provider)

        task_input = {
            "prompt": config.get("prompt") or "",
            "negative_prompt": config.get("negative_prompt") or "",
            "duration": config.get("duration") or 5,
            "aspect_ratio": config.get("aspect_ratio") or "9:16",
            "mode": "pro" if config.get("quality") == "pro" else "std",
            "version": config.get("model_version") or "1.6",
        }
        if config.get("image_url"):
            task_input["image_url"] = config["image_url"]
        if config.get("enable_audio"):
            task_input["enable_audio"] = True

        return {
            "model": "kling",
            "task_type": "video_generation",
            "input": task_input,
        }

    def submit(self, config: Dict[str, Any]) -> str:
        data = self._request("POST", KLING_TASK_URL, json=self.build_payload(config))
        task_id = (data.get("data") or {}).get("task_id")
        if not task_id:
            raise AdapterError(f"Kling response missing task_id: {data.get('message', 'unknown error')}", provider=self.provider)

        generation_logger.info(f"Kling task submitted: {task_id}")
        return task_id

    def _parse_task(self, task: Dict[str, Any]) -> Optional[GenerationResult]:
        status = (task.get("status") or "").lower()
        if status == "completed":
            # video_url can live at the top level or under output
            video_url = task.get("video_url") or (task.get("output") or {}).get("video_url")
            if not video_url:
                raise ProviderFailure("Kling reported completion without a video URL")
            return GenerationResult(success=True, result_url=video_url)
        if status == "failed":
            error = task.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else error
            raise ProviderFailure(f"Kling video generation failed: {message or 'Unknown error'}")
        # pending, staged, processing
        return None

    def fetch_result(self, job_id: str) -> Optional[GenerationResult]:
        data = self._request("GET", f"{KLING_TASK_URL}/{job_id}")
        try:
            return self._parse_task(data.get("data") or {})
        except ProviderFailure as e:
            return GenerationResult(success=False, reason=e.message)

    def normalize_callback(self, payload: Dict[str, Any]) -> Tuple[str, Optional[GenerationResult]]:
        """PiAPI webhook body wraps the task the same way the task endpoint does"""
        task = payload.get("data") or {}
        job_id = task.get("task_id")
        if not job_id:
            raise AdapterError("Kling callback missing data.task_id", provider=self.provider)
        try:
            return job_id, self._parse_task(task)
        except ProviderFailure as e:
            return job_id, GenerationResult(success=False, reason=e.message)
