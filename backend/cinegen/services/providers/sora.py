"""Sora 2 image-to-video provider: multipart submit plus a separate content fetch."""

from __future__ import annotations

import base64
import binascii
import logging

from cinegen.schemas.generation import VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.errors import GenerationError
from cinegen.services.poller import PollSettings, StatusReport, StatusVocabulary
from cinegen.services.prompting import map_style_to_english
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission, first_present
from cinegen.services.reference_assets import AssetForm, parse_data_url
from cinegen.services.resolver import ProviderRuntime

logger = logging.getLogger(__name__)


def snap_seconds(duration: int) -> int:
    """Sora renders 4, 8 or 12 second clips only."""
    if duration < 4:
        return 4
    if duration < 8:
        return 8
    return 12


class SoraAdapter(ProviderAdapter):
    name = "sora"
    capabilities = frozenset({Capability.IMAGE2VIDEO})
    reference_form = AssetForm.INLINE
    default_models = {Capability.IMAGE2VIDEO: "sora-2"}
    default_urls = {Capability.IMAGE2VIDEO: "https://yunwu.ai/v1/videos"}
    poll_defaults = PollSettings(interval=1.0, max_attempts=180)
    has_fetch_step = True
    vocabulary = StatusVocabulary.build(
        "sora",
        succeeded=("succeeded", "completed", "Success"),
        failed=("failed", "error", "Failed", "canceled", "Cancelled"),
        running=("processing", "in_progress", "pending", "Pending", "Running", "Waiting", "queued"),
    )

    def _auth(self, runtime: ProviderRuntime) -> dict[str, str]:
        return {"Authorization": f"Bearer {runtime.api_key}", "Accept": "application/json"}

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        fields = {
            "model": self.model_for(runtime),
            "prompt": prompt,
            "seconds": str(snap_seconds(options.duration)),
            "size": "1280x720" if options.is_landscape else "720x1280",
            "watermark": "false",
            "private": "false",
            "style": map_style_to_english(options.style),
        }
        files = None
        if start:
            parsed = parse_data_url(start)
            if parsed is None:
                logger.warning("sora: start image is not inline data, submitting without it")
            else:
                mime, payload = parsed
                try:
                    files = {"input_reference": ("input.png", base64.b64decode(payload), mime)}
                except (binascii.Error, ValueError) as e:
                    raise self._rejected(runtime, "start image is not valid base64") from e

        data = await self._request_json(
            runtime, "POST", self.url_for(runtime),
            data=fields, files=files, headers=self._auth(runtime), label="video submit",
        )
        return VideoSubmission(handle=first_present(data, ("id",), ("task_id",)))

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        data = await self._request_json(
            runtime, "GET", f"{self.url_for(runtime)}/{handle}",
            headers=self._auth(runtime), label="video query",
        )
        return StatusReport(
            raw_status=first_present(data, ("status",), ("data", "status")),
            result_url=data.get("video_url"),
            error=first_present(data, ("error", "message"), ("error_msg",), ("message",)),
            payload=data,
        )

    async def fetch_video_result(
        self, runtime: ProviderRuntime, handle: str, report: StatusReport,
    ) -> str | None:
        try:
            data = await self._request_json(
                runtime, "GET", f"{self.url_for(runtime)}/{handle}/content",
                headers=self._auth(runtime), label="video content",
            )
        except GenerationError:
            if report.result_url:
                logger.warning("sora: content fetch failed, using status payload url")
                return report.result_url
            raise
        return first_present(
            data, ("url",), ("video_url",), ("data", "url"), ("data", "video_url"),
        ) or report.result_url
