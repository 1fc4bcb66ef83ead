"""Capability resolver: picks exactly one provider configuration per call.

Precedence: request-scoped id, then project-scoped id (each only when it
exists and carries a credential), then the single enabled configuration for
the capability. Anything else is NoProviderConfigured; fallbacks belong to
the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cinegen.schemas.provider_config import (
    Capability,
    ProviderConfig,
    ResolutionScope,
    mask_key,
)
from cinegen.services.config_store import ProviderConfigStore
from cinegen.services.errors import NoProviderConfigured

if TYPE_CHECKING:
    from cinegen.services.providers import AdapterRegistry
    from cinegen.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderRuntime:
    """Immutable snapshot of the parameters one outbound call runs with."""
    config_id: str
    provider: str
    capability: Capability
    model: str
    api_url: str
    api_key: str = field(repr=False)

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ProviderRuntime":
        return cls(
            config_id=config.id,
            provider=config.provider.value,
            capability=config.capability,
            model=config.model,
            api_url=config.api_url,
            api_key=config.api_key.get_secret_value(),
        )

    @property
    def masked_key(self) -> str:
        return mask_key(self.api_key)


class CapabilityResolver:
    """Resolves configurations and activates them on their adapters.

    Activation for one capability is a critical section guarded by that
    capability's lock; different capabilities never contend. Calls run
    against the returned ProviderRuntime snapshot, so a later activation
    cannot change the parameters of a call already in flight.
    """

    def __init__(self, store: ProviderConfigStore, registry: "AdapterRegistry"):
        self.store = store
        self.registry = registry
        self._locks: dict[Capability, asyncio.Lock] = {c: asyncio.Lock() for c in Capability}

    async def _scoped(self, config_id: str | None, level: str) -> ProviderConfig | None:
        if not config_id:
            return None
        config = await self.store.get(config_id)
        if config is None:
            logger.info("%s-scoped config %s not found, falling through", level, config_id)
            return None
        if not config.has_credential:
            logger.info("%s-scoped config %s has no credential, falling through", level, config_id)
            return None
        return config

    async def resolve(
        self, capability: Capability, scope: ResolutionScope | None = None,
    ) -> ProviderConfig:
        scope = scope or ResolutionScope()

        for config_id, level in ((scope.request, "request"), (scope.project, "project")):
            config = await self._scoped(config_id, level)
            if config is not None:
                logger.debug(
                    "Resolved %s -> %s (%s) at %s scope",
                    capability.value, config.id, config.provider.value, level,
                )
                return config

        config = await self.store.get_enabled(capability)
        if config is None:
            raise NoProviderConfigured(
                f"No enabled provider configured for {capability.value}",
                capability=capability.value,
            )
        logger.debug(
            "Resolved %s -> %s (%s) at default scope",
            capability.value, config.id, config.provider.value,
        )
        return config

    async def activate(
        self,
        capability: Capability,
        scope: ResolutionScope | None = None,
        *,
        fallback: ProviderConfig | None = None,
    ) -> tuple["ProviderAdapter", ProviderRuntime]:
        """Resolve, push the configuration into its adapter, and snapshot it.

        ``fallback`` is the caller's explicit default, used only when
        resolution yields NoProviderConfigured.
        """
        async with self._locks[capability]:
            try:
                config = await self.resolve(capability, scope)
            except NoProviderConfigured:
                if fallback is None:
                    raise
                logger.warning(
                    "No provider configured for %s, using fallback %s",
                    capability.value, fallback.provider.value,
                )
                config = fallback

            adapter = self.registry.get(config.provider.value)
            runtime = ProviderRuntime.from_config(config)
            adapter.configure(runtime)
            logger.info(
                "Activated %s for %s (model=%s key=%s)",
                runtime.provider, capability.value, runtime.model or "default", runtime.masked_key,
            )
            return adapter, runtime
