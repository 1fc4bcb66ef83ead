"""Yunwu proxy provider: Gemini-compatible text/images plus its own video task API."""

from __future__ import annotations

from typing import Any

from cinegen.schemas.generation import VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.providers.base import VideoSubmission, first_present
from cinegen.services.providers.gemini import GeminiAdapter
from cinegen.services.resolver import ProviderRuntime

YUNWU_URL = "https://yunwu.ai"


class YunwuAdapter(GeminiAdapter):
    name = "yunwu"
    default_models = {
        Capability.LLM: "gemini-2.5-pro",
        Capability.TEXT2IMAGE: "gemini-2.5-flash-image",
        Capability.IMAGE2VIDEO: "veo3-fast-frames",
    }
    default_urls = {c: YUNWU_URL for c in GeminiAdapter.capabilities}
    poll_defaults = PollSettings(interval=5.0, max_attempts=240)
    vocabulary = StatusVocabulary.build(
        "yunwu",
        succeeded=("completed", "succeeded"),
        failed=("failed",),
        running=("pending", "processing"),
    )

    def headers(self, runtime: ProviderRuntime) -> dict[str, str]:
        # Bearer auth, not the Google key header.
        return {
            "Authorization": f"Bearer {runtime.api_key}",
            "Content-Type": "application/json",
        }

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        body: dict[str, Any] = {
            "model": self.model_for(runtime),
            "prompt": prompt,
            "enhance_prompt": True,
            "enable_upsample": True,
            "aspect_ratio": "16:9",
        }
        if start:
            body["images"] = [start, end] if end else [start]

        data = await self._request_json(
            runtime, "POST", f"{self.url_for(runtime)}/v1/video/create",
            json=body, label="video submit",
        )
        return VideoSubmission(handle=data.get("id"))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.url_for(runtime)}/v1/video/query",
            params={"id": handle}, label="video query",
        )
        error = data.get("error")
        return StatusReport(
            raw_status=data.get("status"),
            result_url=first_present(data, ("video_url",), ("content", "video_url")),
            error=str(error) if error else None,
            payload=data,
        )
