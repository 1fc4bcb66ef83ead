"""Provider adapter contract.

One adapter instance per backend. Each adapter is a small translation layer:
wire field names, status vocabulary, capability support and defaults. The
HTTP round trip, fault translation, retry wrapping and submit/poll flow are
shared here.

Adapters hold the runtime most recently activated per capability
(``configure``/``active``, reported by ``describe``), but every call receives
its ProviderRuntime explicitly, so re-activation never alters a call already
in flight.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from cinegen.config import get_settings
from cinegen.schemas.generation import ImageOptions, ReferenceAsset, TextOptions, VideoOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.errors import (
    BackendRejected,
    BackendUnreachable,
    RateLimited,
    UnsupportedCapability,
)
from cinegen.services.poller import (
    GenerationTask,
    PollSettings,
    StatusReport,
    StatusVocabulary,
    TaskPoller,
    TaskStatus,
)
from cinegen.services.reference_assets import AssetForm
from cinegen.services.resolver import ProviderRuntime
from cinegen.services.retry import RetryExecutor

logger = logging.getLogger(__name__)


def dig(payload: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists; None when any step is missing."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
        elif not isinstance(current, dict):
            return None
        current = current[step] if isinstance(step, int) else current.get(step)
        if current is None:
            return None
    return current


def first_present(payload: Any, *paths: tuple[str | int, ...]) -> Any:
    for path in paths:
        value = dig(payload, *path)
        if value:
            return value
    return None


def backend_error_message(payload: Any) -> str:
    """The backend's own error text from a JSON body, or an empty string."""
    message = first_present(payload, ("error", "message"), ("message",), ("msg",), ("error",))
    return message if isinstance(message, str) else ""


@dataclass(frozen=True)
class VideoSubmission:
    """Submit outcome: a task handle to poll, or a direct result."""
    handle: str | None = None
    direct_url: str | None = None


class ProviderAdapter(ABC):
    """Base class for all backend adapters."""

    name: ClassVar[str] = "unknown"
    capabilities: ClassVar[frozenset[Capability]] = frozenset()
    native_grid: ClassVar[bool] = False
    reference_form: ClassVar[AssetForm] = AssetForm.URL
    default_models: ClassVar[dict[Capability, str]] = {}
    default_urls: ClassVar[dict[Capability, str]] = {}
    poll_defaults: ClassVar[PollSettings] = PollSettings(interval=5.0, max_attempts=60)
    vocabulary: ClassVar[StatusVocabulary | None] = None
    has_fetch_step: ClassVar[bool] = False

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry: RetryExecutor | None = None,
        poller: TaskPoller | None = None,
        poll_settings: PollSettings | None = None,
    ):
        self.http_client = http_client
        self.retry = retry or RetryExecutor()
        self.poller = poller or TaskPoller()
        if poll_settings is None:
            override = get_settings().poll_overrides().get(self.name)
            poll_settings = PollSettings(*override) if override else self.poll_defaults
        self.poll_settings = poll_settings
        self._active: dict[Capability, ProviderRuntime] = {}

    # ------------------------------------------------------------------
    # Runtime configuration
    # ------------------------------------------------------------------

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def configure(self, runtime: ProviderRuntime) -> None:
        """Make ``runtime`` this adapter's active configuration for its capability."""
        self._require(runtime.capability)
        self._active[runtime.capability] = runtime

    def active(self, capability: Capability) -> ProviderRuntime | None:
        return self._active.get(capability)

    def model_for(self, runtime: ProviderRuntime) -> str:
        return runtime.model or self.default_models.get(runtime.capability, "")

    def url_for(self, runtime: ProviderRuntime) -> str:
        return (runtime.api_url or self.default_urls.get(runtime.capability, "")).rstrip("/")

    def headers(self, runtime: ProviderRuntime) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {runtime.api_key}",
            "Content-Type": "application/json",
        }

    def _require(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            raise UnsupportedCapability(
                f"{self.name} does not support {capability.value}",
                provider=self.name,
                capability=capability.value,
            )

    def describe(self) -> dict[str, Any]:
        """Support-matrix entry for the config API."""
        return {
            "provider": self.name,
            "capabilities": sorted(c.value for c in self.capabilities),
            "native_grid": self.native_grid,
            "reference_form": self.reference_form.value,
            "default_models": {c.value: m for c, m in self.default_models.items()},
            "active": {c.value: rt.config_id for c, rt in self._active.items()},
            "poll": {
                "interval": self.poll_settings.interval,
                "max_attempts": self.poll_settings.max_attempts,
            },
        }

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _error_context(self, runtime: ProviderRuntime) -> dict[str, Any]:
        return {
            "provider": self.name,
            "capability": runtime.capability.value,
            "secrets": (runtime.api_key,),
        }

    def _raise_for_status(self, runtime: ProviderRuntime, resp: httpx.Response, label: str) -> None:
        if resp.status_code < 400:
            return
        context = self._error_context(runtime)
        body = resp.text[:1000]
        try:
            message = backend_error_message(resp.json())
        except ValueError:
            message = ""
        if resp.status_code == 429:
            raise RateLimited(
                f"{label} rate limited (HTTP 429)",
                status_code=429, raw_message=body, backend_message=message, **context,
            )
        raise BackendRejected(
            f"{label} failed with HTTP {resp.status_code}",
            status_code=resp.status_code, raw_message=body, backend_message=message, **context,
        )

    async def _send(
        self,
        runtime: ProviderRuntime,
        method: str,
        url: str,
        *,
        label: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """One retry-wrapped request; transport faults become BackendUnreachable."""

        async def call() -> httpx.Response:
            kwargs.setdefault("headers", self.headers(runtime))
            try:
                resp = await self.http_client.request(method, url, **kwargs)
            except httpx.TimeoutException as e:
                raise BackendUnreachable(
                    f"{label} timed out", raw_message=str(e), **self._error_context(runtime),
                ) from e
            except httpx.HTTPError as e:
                raise BackendUnreachable(
                    f"{label} transport error: {type(e).__name__}",
                    raw_message=str(e), **self._error_context(runtime),
                ) from e
            self._raise_for_status(runtime, resp, label)
            return resp

        return await self.retry.run(
            call,
            label=f"{self.name}:{label}",
            provider=self.name,
            capability=runtime.capability.value,
        )

    async def _request_json(
        self,
        runtime: ProviderRuntime,
        method: str,
        url: str,
        *,
        label: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        resp = await self._send(runtime, method, url, label=label, **kwargs)
        try:
            payload = resp.json()
        except ValueError as e:
            raise BackendRejected(
                f"{label} returned a non-JSON body",
                status_code=resp.status_code, raw_message=resp.text[:500],
                **self._error_context(runtime),
            ) from e
        if not isinstance(payload, dict):
            raise BackendRejected(
                f"{label} returned an unexpected JSON shape",
                status_code=resp.status_code, raw_message=str(payload)[:500],
                **self._error_context(runtime),
            )
        return payload

    def _rejected(self, runtime: ProviderRuntime, message: str, payload: Any = None) -> BackendRejected:
        return BackendRejected(
            message,
            raw_message=str(payload)[:1000] if payload is not None else "",
            backend_message=backend_error_message(payload),
            **self._error_context(runtime),
        )

    # ------------------------------------------------------------------
    # Shared wire shapes
    # ------------------------------------------------------------------

    async def _chat_completion(
        self, runtime: ProviderRuntime, prompt: str, options: TextOptions,
    ) -> str:
        """OpenAI-compatible /chat/completions round trip."""
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})
        body: dict[str, Any] = {
            "model": self.model_for(runtime),
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.json_mode:
            body["response_format"] = {"type": "json_object"}

        data = await self._request_json(
            runtime, "POST", f"{self.url_for(runtime)}/chat/completions",
            json=body, label="chat",
        )
        content = dig(data, "choices", 0, "message", "content")
        if content is None:
            raise self._rejected(runtime, "chat response carried no content", data)
        logger.info("%s chat response OK, length=%d", self.name, len(content))
        return content

    # ------------------------------------------------------------------
    # Capability contract
    # ------------------------------------------------------------------

    async def generate_text(
        self, runtime: ProviderRuntime, prompt: str, options: TextOptions,
    ) -> str:
        self._require(Capability.LLM)
        raise NotImplementedError

    async def generate_image(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        references: list[ReferenceAsset],
        options: ImageOptions,
    ) -> list[str]:
        """Return one or more image locations (URLs or data URLs)."""
        self._require(Capability.TEXT2IMAGE)
        raise NotImplementedError

    async def submit_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
    ) -> VideoSubmission:
        self._require(Capability.IMAGE2VIDEO)
        raise NotImplementedError

    async def query_video(self, runtime: ProviderRuntime, handle: str) -> StatusReport:
        raise NotImplementedError

    async def fetch_video_result(
        self, runtime: ProviderRuntime, handle: str, report: StatusReport,
    ) -> str | None:
        """Separate result-fetch step for backends that split 'done' from the payload."""
        return report.result_url

    async def generate_video(
        self,
        runtime: ProviderRuntime,
        prompt: str,
        start: str | None,
        end: str | None,
        options: VideoOptions,
        *,
        cancel: asyncio.Event | None = None,
    ) -> GenerationTask:
        """Submit, then drive the task to a terminal state with the poller."""
        self._require(Capability.IMAGE2VIDEO)
        submission = await self.submit_video(runtime, prompt, start, end, options)

        task = GenerationTask(
            provider=self.name,
            capability=Capability.IMAGE2VIDEO.value,
            handle=submission.handle or "",
        )
        if submission.direct_url:
            task.transition(TaskStatus.SUCCEEDED, result_url=submission.direct_url)
            logger.info("%s returned a video directly", self.name)
            return task
        if not submission.handle:
            raise self._rejected(runtime, "video submit returned no task id")

        logger.info("%s video task created: %s (model=%s)", self.name, task.handle, self.model_for(runtime))
        if self.vocabulary is None:
            raise NotImplementedError(f"{self.name} declares no status vocabulary")
        return await self.poller.drive(
            task,
            query=lambda handle: self.query_video(runtime, handle),
            vocabulary=self.vocabulary,
            settings=self.poll_settings,
            fetch_result=(
                (lambda handle, report: self.fetch_video_result(runtime, handle, report))
                if self.has_fetch_step else None
            ),
            cancel=cancel,
        )
