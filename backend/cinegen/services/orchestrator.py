"""Generation orchestrator: the inbound API of the core.

resolve → (normalize references) → adapter call under retry → (poll) →
persist. Each call resolves its own ProviderRuntime, so concurrent calls for
different capabilities never see each other's credentials.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from pydantic import SecretStr

from cinegen.config import Settings, get_settings
from cinegen.schemas.generation import (
    GenerationRequest,
    ImageOptions,
    ReferenceAsset,
    TextOptions,
    VideoOptions,
)
from cinegen.schemas.provider_config import (
    Capability,
    ProviderConfig,
    ProviderName,
    ResolutionScope,
)
from cinegen.services.composition import GridComposer
from cinegen.services.errors import GenerationError, TaskTimedOut
from cinegen.services.persistence import Artifact, ArtifactPersistence
from cinegen.services.prompting import styled_prompt, with_reference_legend
from cinegen.services.providers import AdapterRegistry
from cinegen.services.reference_assets import ReferenceAssetNormalizer
from cinegen.services.resolver import CapabilityResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedText:
    text: str
    provider: str


def fallback_configs(settings: Settings, registry: AdapterRegistry) -> dict[Capability, ProviderConfig]:
    """Explicit per-capability defaults used when nothing is configured.

    Empty unless FALLBACK_API_KEY is set; only capabilities the fallback
    provider supports get an entry.
    """
    if not settings.FALLBACK_API_KEY:
        return {}
    try:
        provider = ProviderName(settings.FALLBACK_PROVIDER)
    except ValueError:
        logger.warning("Unknown FALLBACK_PROVIDER %r, fallback disabled", settings.FALLBACK_PROVIDER)
        return {}
    adapter = registry.get(provider.value)
    return {
        capability: ProviderConfig(
            id=f"fallback-{provider.value}-{capability.value}",
            provider=provider,
            capability=capability,
            api_key=SecretStr(settings.FALLBACK_API_KEY),
            description="fallback",
        )
        for capability in Capability
        if adapter.supports(capability)
    }


class _CapabilityStats:
    def __init__(self) -> None:
        self.calls = 0
        self.errors = 0
        self.latency_ms = 0
        self.by_error: dict[str, int] = {}
        self.by_provider: dict[str, int] = {}


class GenerationOrchestrator:
    """Entry point for text, image and video generation."""

    def __init__(
        self,
        resolver: CapabilityResolver,
        normalizer: ReferenceAssetNormalizer,
        persistence: ArtifactPersistence,
        composer: GridComposer | None = None,
        *,
        fallbacks: dict[Capability, ProviderConfig] | None = None,
        timeout: float | None = None,
    ):
        self.resolver = resolver
        self.normalizer = normalizer
        self.persistence = persistence
        self.composer = composer or GridComposer(normalizer)
        self.fallbacks = fallbacks if fallbacks is not None else fallback_configs(
            get_settings(), resolver.registry,
        )
        self.timeout = timeout
        self._stats: dict[Capability, _CapabilityStats] = {c: _CapabilityStats() for c in Capability}

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _tracked(self, capability: Capability) -> AsyncIterator[_CapabilityStats]:
        stats = self._stats[capability]
        stats.calls += 1
        start = time.monotonic()
        try:
            yield stats
        except GenerationError as e:
            stats.errors += 1
            name = type(e).__name__
            stats.by_error[name] = stats.by_error.get(name, 0) + 1
            logger.warning("%s generation failed: %s", capability.value, e)
            raise
        finally:
            stats.latency_ms += int((time.monotonic() - start) * 1000)

    def get_metrics(self) -> dict[str, Any]:
        """Return per-capability usage statistics."""
        metrics = {}
        for capability, stats in self._stats.items():
            ok = stats.calls - stats.errors
            metrics[capability.value] = {
                "total_calls": stats.calls,
                "total_errors": stats.errors,
                "error_rate": round(stats.errors / max(stats.calls, 1), 3),
                "avg_latency_ms": round(stats.latency_ms / max(stats.calls, 1)) if stats.calls else 0,
                "succeeded": ok,
                "errors_by_type": dict(stats.by_error),
                "calls_by_provider": dict(stats.by_provider),
            }
        return metrics

    async def _bounded(self, coro: Any, capability: Capability) -> Any:
        if self.timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TaskTimedOut(
                f"generation exceeded {self.timeout:.0f}s", capability=capability.value,
            ) from e

    # ------------------------------------------------------------------
    # Inbound API
    # ------------------------------------------------------------------

    async def resolve_and_generate_text(
        self,
        prompt: str,
        options: TextOptions | None = None,
        scope: ResolutionScope | None = None,
    ) -> GeneratedText:
        options = options or TextOptions()
        capability = Capability.LLM
        async with self._tracked(capability) as stats:
            adapter, runtime = await self.resolver.activate(
                capability, scope, fallback=self.fallbacks.get(capability),
            )
            stats.by_provider[adapter.name] = stats.by_provider.get(adapter.name, 0) + 1
            text = await self._bounded(adapter.generate_text(runtime, prompt, options), capability)
            return GeneratedText(text=text, provider=adapter.name)

    async def resolve_and_generate_image(
        self,
        prompt: str,
        references: list[ReferenceAsset] | tuple[ReferenceAsset, ...] = (),
        options: ImageOptions | None = None,
        scope: ResolutionScope | None = None,
    ) -> Artifact:
        options = options or ImageOptions()
        capability = Capability.TEXT2IMAGE
        async with self._tracked(capability) as stats:
            adapter, runtime = await self.resolver.activate(
                capability, scope, fallback=self.fallbacks.get(capability),
            )
            stats.by_provider[adapter.name] = stats.by_provider.get(adapter.name, 0) + 1
            origin = await self._bounded(
                self._generate_image(adapter, runtime, prompt, list(references), options),
                capability,
            )
            artifact = Artifact(origin=origin, capability=capability, provider=adapter.name)
            category = "character" if options.is_character else "image"
            public_url = await self.persistence.persist(artifact, category)
            return artifact.with_public_url(public_url)

    async def _generate_image(self, adapter, runtime, prompt, references, options) -> str:
        refs = await self.normalizer.normalize_all(references, adapter.reference_form)
        described = with_reference_legend(prompt, refs)
        grid_prompt = styled_prompt(described, options.style, options.count, options.aspect_ratio)

        if options.count > 1 and not adapter.native_grid:
            panel_prompt = styled_prompt(described, options.style)
            panels = await self.composer.collect_panels(
                adapter, runtime, grid_prompt, panel_prompt, refs, options,
            )
            return await self.composer.compose(adapter, runtime, panels, options)

        images = await adapter.generate_image(runtime, grid_prompt, refs, options)
        if len(images) > 1 and options.count > 1:
            return await self.composer.compose(adapter, runtime, images[: options.count], options)
        return images[0]

    async def resolve_and_generate_video(
        self,
        prompt: str,
        start: str | None = None,
        end: str | None = None,
        options: VideoOptions | None = None,
        scope: ResolutionScope | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> Artifact:
        options = options or VideoOptions()
        capability = Capability.IMAGE2VIDEO
        async with self._tracked(capability) as stats:
            adapter, runtime = await self.resolver.activate(
                capability, scope, fallback=self.fallbacks.get(capability),
            )
            stats.by_provider[adapter.name] = stats.by_provider.get(adapter.name, 0) + 1
            if start:
                start = await self.normalizer.normalize(start, adapter.reference_form)
            if end:
                end = await self.normalizer.normalize(end, adapter.reference_form)

            task = await self._bounded(
                adapter.generate_video(runtime, prompt, start, end, options, cancel=cancel),
                capability,
            )
            artifact = Artifact(
                origin=task.result_url or "",
                capability=capability,
                provider=adapter.name,
                media_type="video",
            )
            public_url = await self.persistence.persist(artifact, "video")
            return artifact.with_public_url(public_url)

    async def generate(
        self, request: GenerationRequest, *, cancel: asyncio.Event | None = None,
    ) -> GeneratedText | Artifact:
        """Dispatch a GenerationRequest to the matching inbound operation."""
        if request.capability is Capability.LLM:
            return await self.resolve_and_generate_text(
                request.prompt, request.text_options, request.scope,
            )
        if request.capability is Capability.TEXT2IMAGE:
            return await self.resolve_and_generate_image(
                request.prompt, request.references, request.image_options, request.scope,
            )
        start = request.references[0].source if request.references else None
        end = request.references[1].source if len(request.references) > 1 else None
        return await self.resolve_and_generate_video(
            request.prompt, start, end, request.video_options, request.scope, cancel=cancel,
        )
