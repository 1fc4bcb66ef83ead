"""SkyReels multi-object image-to-video provider; the credential travels in the body."""

from __future__ import annotations

from typing import Any

from cinegen.schemas.generation import VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, dig
from cinegen.services.resolver import ProviderRuntime


class SkyReelsAdapter(ProviderAdapter):
    name = "skyreels"
    capabilities = frozenset({Capability.IMAGE2VIDEO})
    default_models = {Capability.IMAGE2VIDEO: "skyreels-i2v"}
    default_urls = {
        Capability.IMAGE2VIDEO: "https://apis.skyreels.ai/api/v1/video/multiobject/submit",
    }
    poll_defaults = PollSettings(interval=10.0, max_attempts=120)
    vocabulary = StatusVocabulary.build(
        "skyreels",
        succeeded=("succeeded",),
        failed=("failed", "error"),
        running=("pending", "running", "unknown", "submitted"),
    )

    def headers(self, runtime: ProviderRuntime) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def task_url(self, runtime: ProviderRuntime) -> str:
        return self.url_for(runtime).replace("/submit", "/task")

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        ref_images = [image for image in (start, None if options.full_frame else end) if image]
        body: dict[str, Any] = {
            "api_key": runtime.api_key,
            "prompt": prompt,
            "duration": 5,
            "aspect_ratio": options.aspect_ratio,
        }
        if ref_images:
            body["ref_images"] = ref_images

        data = await self._request_json(
            runtime, "POST", self.url_for(runtime), json=body, label="video submit",
        )
        return VideoSubmission(handle=data.get("task_id"))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.task_url(runtime)}/{handle}", label="video query",
        )
        if data.get("code") != 200:
            return StatusReport(raw_status="error", error=str(data.get("message")), payload=data)
        video_url = dig(data, "data", "video_url")
        if video_url:
            return StatusReport(raw_status="succeeded", result_url=video_url, payload=data)
        return StatusReport(
            raw_status=data.get("status"),
            error=data.get("error_message") or data.get("message"),
            payload=data,
        )
