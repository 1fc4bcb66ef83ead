"""OpenAI provider: chat, DALL-E 3 images, and video generation tasks."""

from __future__ import annotations

import logging
from typing import Any

from cinegen.schemas.generation import ImageOptions, ReferenceAsset, TextOptions, VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.prompting import english_reference_prompt
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, first_present
from cinegen.services.resolver import ProviderRuntime

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1"

# DALL-E 3 only renders a few fixed sizes.
DALLE_SIZES = {
    "1728x2304": "1024x1792",
    "2560x1440": "1024x1024",
    "1440x2560": "1024x1024",
}


class OpenAIAdapter(ProviderAdapter):
    name = "openai"
    capabilities = frozenset({Capability.LLM, Capability.TEXT2IMAGE, Capability.IMAGE2VIDEO})
    default_models = {
        Capability.LLM: "gpt-4-turbo-preview",
        Capability.TEXT2IMAGE: "dall-e-3",
        Capability.IMAGE2VIDEO: "sora-1.0-turbo",
    }
    default_urls = {c: OPENAI_URL for c in capabilities}
    poll_defaults = PollSettings(interval=5.0, max_attempts=120)
    vocabulary = StatusVocabulary.build(
        "openai",
        succeeded=("succeeded", "completed"),
        failed=("failed",),
        running=("processing", "queued"),
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
        # DALL-E 3 takes no reference images; describe them in the prompt instead.
        if references and not options.is_character:
            prompt = english_reference_prompt(prompt)
        if references:
            logger.warning("openai image generation ignores %d reference images", len(references))

        size = DALLE_SIZES.get("1728x2304" if options.is_character else options.size, "1024x1024")
        body = {
            "model": self.model_for(runtime),
            "prompt": prompt,
            "n": 1,
            "size": size,
            "quality": "standard",
            "response_format": "url",
        }
        data = await self._request_json(
            runtime, "POST", f"{self.url_for(runtime)}/images/generations",
            json=body, label="image",
        )
        url = first_present(data, ("data", 0, "url"))
        if not url:
            raise self._rejected(runtime, "image response carried no url", data)
        return [url]

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
            "duration": min(max(options.duration, 1), 10),
            "aspect_ratio": "16:9",
        }
        if start:
            body["image"] = start
        if end and not options.full_frame:
            logger.warning("openai video generation ignores the end frame")

        data = await self._request_json(
            runtime, "POST", f"{self.url_for(runtime)}/videos/generations",
            json=body, label="video submit",
        )
        if data.get("id"):
            return VideoSubmission(handle=data["id"])
        return VideoSubmission(direct_url=first_present(data, ("video_url",), ("url",)))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.url_for(runtime)}/videos/generations/{handle}",
            label="video query",
        )
        error = data.get("error")
        return StatusReport(
            raw_status=data.get("status"),
            result_url=first_present(data, ("video_url",), ("url",)),
            error=str(error) if error else None,
            payload=data,
        )
