"""MiniMax Hailuo image-to-video provider."""

from __future__ import annotations

from typing import Any

from cinegen.schemas.generation import VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, first_present
from cinegen.services.resolver import ProviderRuntime


class MinimaxAdapter(ProviderAdapter):
    name = "minimax"
    capabilities = frozenset({Capability.IMAGE2VIDEO})
    default_models = {Capability.IMAGE2VIDEO: "MiniMax-Hailuo-2.3"}
    default_urls = {Capability.IMAGE2VIDEO: "https://yunwu.ai/minimax/v1/video_generation"}
    poll_defaults = PollSettings(interval=1.0, max_attempts=120)
    vocabulary = StatusVocabulary.build(
        "minimax",
        succeeded=("Success",),
        failed=("Failed", "Cancelled"),
        running=("Running", "Waiting", "Queueing", "Preparing", "Processing"),
    )

    def query_url(self, runtime: ProviderRuntime) -> str:
        return f"{self.url_for(runtime).replace('/video_generation', '')}/query/video_generation"

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        if not start:
            raise self._rejected(runtime, "minimax requires a start image")

        body: dict[str, Any] = {
            "model": self.model_for(runtime),
            "prompt": prompt,
            "duration": options.duration,
            "first_frame_image": start,
            "resolution": "768P",
            "prompt_optimizer": True,
        }
        if end and not options.full_frame:
            body["last_frame_image"] = end

        data = await self._request_json(
            runtime, "POST", self.url_for(runtime), json=body, label="video submit",
        )
        return VideoSubmission(handle=data.get("task_id"))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", self.query_url(runtime),
            params={"task_id": handle}, label="video query",
        )
        return StatusReport(
            raw_status=first_present(data, ("data", "data", "status"), ("data", "status")),
            result_url=first_present(data, ("data", "data", "file", "download_url")),
            error=first_present(data, ("error_msg",), ("base_resp", "status_msg")),
            payload=data,
        )
