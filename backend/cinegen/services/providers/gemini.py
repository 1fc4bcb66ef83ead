"""Google Gemini provider over REST: generateContent and Veo long-running operations.

Text and images go through ``models/{model}:generateContent``; images come
back as inline data. Video uses ``predictLongRunning`` and the operation
resource as the task handle.
"""

from __future__ import annotations

import logging
from typing import Any

from cinegen.schemas.generation import ImageOptions, ReferenceAsset, TextOptions, VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.prompting import english_reference_prompt
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, dig, first_present
from cinegen.services.reference_assets import AssetForm, parse_data_url
from cinegen.services.resolver import ProviderRuntime

logger = logging.getLogger(__name__)

GEMINI_URL = "https://generativelanguage.googleapis.com"


def inline_part(source: str) -> dict[str, Any] | None:
    parsed = parse_data_url(source)
    if parsed is None:
        return None
    mime, payload = parsed
    return {"inlineData": {"mimeType": mime, "data": payload}}


class GeminiAdapter(ProviderAdapter):
    name = "gemini"
    capabilities = frozenset({Capability.LLM, Capability.TEXT2IMAGE, Capability.IMAGE2VIDEO})
    native_grid = True
    reference_form = AssetForm.INLINE
    default_models = {
        Capability.LLM: "gemini-2.5-flash",
        Capability.TEXT2IMAGE: "gemini-2.5-flash-image",
        Capability.IMAGE2VIDEO: "veo-3.1-fast-generate-preview",
    }
    default_urls = {c: GEMINI_URL for c in capabilities}
    poll_defaults = PollSettings(interval=10.0, max_attempts=60)
    vocabulary = StatusVocabulary.build(
        "gemini",
        succeeded=("done",),
        failed=("error",),
        running=("running",),
    )

    def headers(self, runtime: ProviderRuntime) -> dict[str, str]:
        return {
            "x-goog-api-key": runtime.api_key,
            "Content-Type": "application/json",
        }

    def _content_url(self, runtime: ProviderRuntime) -> str:
        return f"{self.url_for(runtime)}/v1beta/models/{self.model_for(runtime)}:generateContent"

    async def generate_text(self, runtime: ProviderRuntime, prompt: str, options: TextOptions) -> str:
        self._require(Capability.LLM)
        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature,
                "topP": 0.95,
                "maxOutputTokens": options.max_tokens,
            },
        }
        if options.system_prompt:
            body["systemInstruction"] = {"parts": [{"text": options.system_prompt}]}
        if options.json_mode:
            body["generationConfig"]["responseMimeType"] = "application/json"

        data = await self._request_json(runtime, "POST", self._content_url(runtime), json=body, label="text")
        text = dig(data, "candidates", 0, "content", "parts", 0, "text")
        if text is None:
            raise self._rejected(runtime, "generateContent returned no text", data)
        return text

    async def generate_image(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        references: list[ReferenceAsset],
        options: ImageOptions,
    ) -> list[str]:
        self._require(Capability.TEXT2IMAGE)
        text = english_reference_prompt(prompt) if references else prompt
        parts: list[dict[str, Any]] = [{"text": text}]
        for ref in references:
            part = inline_part(ref.source)
            if part is None:
                logger.warning("%s: skipping reference that is not inline data", self.name)
                continue
            parts.append(part)

        body = {"contents": [{"role": "user", "parts": parts}]}
        data = await self._request_json(runtime, "POST", self._content_url(runtime), json=body, label="image")

        images = []
        for part in dig(data, "candidates", 0, "content", "parts") or []:
            inline = part.get("inlineData") if isinstance(part, dict) else None
            if inline and inline.get("data"):
                images.append(f"data:{inline.get('mimeType') or 'image/png'};base64,{inline['data']}")
        if not images:
            raise self._rejected(runtime, "generateContent returned no image data", data)
        return images

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        instance: dict[str, Any] = {"prompt": prompt}
        for key, source in (("image", start), ("lastFrame", end)):
            if not source:
                continue
            parsed = parse_data_url(source)
            if parsed is None:
                logger.warning("%s: %s is not inline data, omitting it", self.name, key)
                continue
            instance[key] = {"bytesBase64Encoded": parsed[1], "mimeType": parsed[0]}

        body = {
            "instances": [instance],
            "parameters": {"aspectRatio": "16:9", "resolution": "720p"},
        }
        url = f"{self.url_for(runtime)}/v1beta/models/{self.model_for(runtime)}:predictLongRunning"
        data = await self._request_json(runtime, "POST", url, json=body, label="video submit")
        return VideoSubmission(handle=data.get("name"))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.url_for(runtime)}/v1beta/{handle}", label="video query",
        )
        if data.get("error"):
            return StatusReport(raw_status="error", error=str(data["error"]), payload=data)
        if not data.get("done"):
            return StatusReport(raw_status="running", payload=data)
        return StatusReport(
            raw_status="done",
            result_url=first_present(
                data,
                ("response", "generateVideoResponse", "generatedSamples", 0, "video", "uri"),
                ("response", "generatedVideos", 0, "video", "uri"),
            ),
            payload=data,
        )
