"""Provider adapters and the name → adapter registry.

Usage:
    registry = build_registry(http_client, retry=RetryExecutor(), poller=TaskPoller())
    adapter = registry.get("kling")
    registry.support_matrix()
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cinegen.schemas.provider_config import Capability
from cinegen.services.errors import BackendRejected
from cinegen.services.poller import TaskPoller
from cinegen.services.providers.base import ProviderAdapter, VideoSubmission
from cinegen.services.providers.deepseek import DeepSeekAdapter
from cinegen.services.providers.doubao import DoubaoAdapter
from cinegen.services.providers.gemini import GeminiAdapter
from cinegen.services.providers.kling import KlingAdapter
from cinegen.services.providers.minimax import MinimaxAdapter
from cinegen.services.providers.openai import OpenAIAdapter
from cinegen.services.providers.skyreels import SkyReelsAdapter
from cinegen.services.providers.sora import SoraAdapter
from cinegen.services.providers.yunwu import YunwuAdapter
from cinegen.services.retry import RetryExecutor

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: tuple[type[ProviderAdapter], ...] = (
    DoubaoAdapter,
    DeepSeekAdapter,
    OpenAIAdapter,
    GeminiAdapter,
    YunwuAdapter,
    KlingAdapter,
    MinimaxAdapter,
    SoraAdapter,
    SkyReelsAdapter,
)


class AdapterRegistry:
    """In-memory registry of adapter instances keyed by provider name."""

    def __init__(self) -> None:
        self._adapters: dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise BackendRejected(f"Unknown provider: {name}", provider=name)
        return adapter

    def names(self) -> list[str]:
        return sorted(self._adapters)

    def for_capability(self, capability: Capability) -> list[ProviderAdapter]:
        return [a for a in self._adapters.values() if a.supports(capability)]

    def support_matrix(self) -> list[dict[str, Any]]:
        return [self._adapters[name].describe() for name in self.names()]


def build_registry(
    http_client: httpx.AsyncClient,
    *,
    retry: RetryExecutor | None = None,
    poller: TaskPoller | None = None,
) -> AdapterRegistry:
    """Instantiate every known adapter around one shared HTTP client."""
    retry = retry or RetryExecutor()
    poller = poller or TaskPoller()
    registry = AdapterRegistry()
    for cls in ADAPTER_CLASSES:
        registry.register(cls(http_client, retry=retry, poller=poller))
    logger.debug("Registered %d provider adapters", len(ADAPTER_CLASSES))
    return registry


__all__ = [
    "ADAPTER_CLASSES",
    "AdapterRegistry",
    "ProviderAdapter",
    "VideoSubmission",
    "build_registry",
]
