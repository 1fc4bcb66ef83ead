"""Doubao (Volcengine Ark) provider: chat, Seedream images, Seedance video tasks."""

from __future__ import annotations

import logging
from typing import Any

from cinegen.schemas.generation import ImageOptions, ReferenceAsset, TextOptions, VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, first_present
from cinegen.services.resolver import ProviderRuntime

logger = logging.getLogger(__name__)

ARK_URL = "https://ark.cn-beijing.volces.com/api/v3"
CHARACTER_SIZE = "1728x2304"


class DoubaoAdapter(ProviderAdapter):
    name = "doubao"
    capabilities = frozenset({Capability.LLM, Capability.TEXT2IMAGE, Capability.IMAGE2VIDEO})
    default_models = {
        Capability.LLM: "doubao-1-5-pro-32k-250115",
        Capability.TEXT2IMAGE: "doubao-seedream-4-5-251128",
        Capability.IMAGE2VIDEO: "doubao-seedance-1-0-lite-i2v-250428",
    }
    default_urls = {c: ARK_URL for c in capabilities}
    poll_defaults = PollSettings(interval=5.0, max_attempts=60)
    vocabulary = StatusVocabulary.build(
        "doubao",
        succeeded=("completed", "succeeded"),
        failed=("failed",),
        running=("queued", "running", "pending"),
    )

    async def generate_text(self, runtime: ProviderRuntime, prompt: str, options: TextOptions) -> str:
        self._require(Capability.LLM)
        return await self._chat_completion(runtime, prompt, options)

    async def generate_image(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        references: list[ReferenceAsset],
        options: ImageOptions,
    ) -> list[str]:
        self._require(Capability.TEXT2IMAGE)
        body: dict[str, Any] = {
            "model": self.model_for(runtime),
            "prompt": prompt,
            "size": CHARACTER_SIZE if options.is_character else options.size,
            "watermark": False,
        }
        if references:
            body["image"] = [ref.source for ref in references]

        data = await self._request_json(
            runtime, "POST", f"{self.url_for(runtime)}/images/generations",
            json=body, label="image",
        )
        urls = [item.get("url") for item in data.get("data") or [] if isinstance(item, dict)]
        urls = [u for u in urls if u]
        if not urls:
            raise self._rejected(runtime, "image response carried no data", data)
        return urls

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        model = self.model_for(runtime)
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if start:
            content.append({
                "type": "image_url",
                "image_url": {"url": start},
                "role": "reference_image" if options.full_frame else "first_frame",
            })
        if end and not options.full_frame:
            content.append({
                "type": "image_url",
                "image_url": {"url": end},
                "role": "last_frame",
            })

        body: dict[str, Any] = {
            "model": model,
            "duration": options.duration,
            "watermark": False,
            "content": content,
        }
        # Seedance 1.5 models generate a soundtrack on request
        if "1-5" in model:
            body["generate_audio"] = True

        data = await self._request_json(
            runtime, "POST", f"{self.url_for(runtime)}/contents/generations/tasks",
            json=body, label="video submit",
        )
        return VideoSubmission(handle=data.get("id"))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.url_for(runtime)}/contents/generations/tasks/{handle}",
            label="video query",
        )
        error = data.get("error")
        return StatusReport(
            raw_status=data.get("status"),
            result_url=first_present(data, ("video_url",), ("content", "video_url")),
            error=str(error) if error else None,
            payload=data,
        )
