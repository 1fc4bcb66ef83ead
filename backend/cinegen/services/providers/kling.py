"""Kling image-to-video provider (via the Yunwu Kling gateway by default)."""

from __future__ import annotations

from typing import Any

from cinegen.schemas.generation import VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, first_present
from cinegen.services.reference_assets import strip_data_url_prefix
from cinegen.services.resolver import ProviderRuntime


class KlingAdapter(ProviderAdapter):
    name = "kling"
    capabilities = frozenset({Capability.IMAGE2VIDEO})
    default_models = {Capability.IMAGE2VIDEO: "kling-v2-6"}
    default_urls = {Capability.IMAGE2VIDEO: "https://yunwu.ai/kling/v1/videos/image2video"}
    poll_defaults = PollSettings(interval=1.0, max_attempts=120)
    vocabulary = StatusVocabulary.build(
        "kling",
        succeeded=("Succeeded", "Success", "succeed"),
        failed=("Failed", "Error", "failed"),
        running=("Processing", "Running", "Pending", "submitted", "processing"),
    )

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
            raise self._rejected(runtime, "kling requires a start image")

        model = self.model_for(runtime)
        # Kling takes raw base64, never a data URL prefix.
        body: dict[str, Any] = {
            "model_name": model,
            "image": strip_data_url_prefix(start),
            "prompt": prompt,
            "negative_prompt": "",
            "cfg_scale": 0.5,
            "mode": "std",
            "duration": 10 if options.duration > 6 else 5,
        }
        if "2-6" in model:
            body["sound"] = "on"
        if end and not options.full_frame:
            body["image_tail"] = strip_data_url_prefix(end)

        data = await self._request_json(
            runtime, "POST", self.url_for(runtime), json=body, label="video submit",
        )
        return VideoSubmission(handle=first_present(data, ("task_id",), ("data", "task_id")))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.url_for(runtime)}/{handle}", label="video query",
        )
        return StatusReport(
            raw_status=first_present(
                data, ("data", "data", "status"), ("data", "status"), ("data", "task_status"),
            ),
            result_url=first_present(
                data,
                ("data", "data", "file", "download_url"),
                ("data", "file", "download_url"),
                ("data", "data", "video_url"),
                ("data", "video_url"),
                ("data", "task_result", "videos", 0, "url"),
            ),
            error=first_present(
                data, ("error_msg",), ("message",), ("data", "error_msg"), ("data", "task_status_msg"),
            ),
            payload=data,
        )
