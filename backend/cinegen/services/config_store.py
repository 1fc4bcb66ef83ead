"""Provider configuration store with atomic exclusive enablement.

The store is the only writer of ProviderConfig records. Enabling a
configuration disables every sibling of the same capability inside the same
critical section (a lock for the in-memory store, one transaction for SQL),
so at most one configuration per capability is ever enabled.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cinegen.models.provider_config import ProviderConfigRow
from cinegen.schemas.provider_config import Capability, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)

ARK_URL = "https://ark.cn-beijing.volces.com/api/v3"

DEFAULT_CONFIGS: tuple[ProviderConfig, ...] = (
    ProviderConfig(
        id="deepseek-llm",
        provider=ProviderName.DEEPSEEK,
        capability=Capability.LLM,
        model="deepseek-chat",
        api_url="https://api.deepseek.com/v1",
        enabled=False,
        description="DeepSeek chat",
    ),
    ProviderConfig(
        id="doubao-llm",
        provider=ProviderName.DOUBAO,
        capability=Capability.LLM,
        model="doubao-1-5-pro-32k-250115",
        api_url=ARK_URL,
        enabled=True,
        description="Doubao 1.5 Pro",
    ),
    ProviderConfig(
        id="doubao-image",
        provider=ProviderName.DOUBAO,
        capability=Capability.TEXT2IMAGE,
        model="doubao-seedream-4-5-251128",
        api_url=ARK_URL,
        enabled=True,
        description="Seedream 4.5",
    ),
    ProviderConfig(
        id="doubao-video",
        provider=ProviderName.DOUBAO,
        capability=Capability.IMAGE2VIDEO,
        model="doubao-seedance-1-0-lite-i2v-250428",
        api_url=ARK_URL,
        enabled=True,
        description="Seedance 1.0 Lite",
    ),
)


class ConfigNotFound(LookupError):
    """No provider configuration with the given id."""

    def __init__(self, config_id: str):
        super().__init__(f"Provider config not found: {config_id}")
        self.config_id = config_id


class ProviderConfigStore(ABC):
    """Configuration surface consumed by the resolver and the config API."""

    @abstractmethod
    async def get(self, config_id: str) -> ProviderConfig | None: ...

    @abstractmethod
    async def list_all(self) -> list[ProviderConfig]: ...

    @abstractmethod
    async def save(self, config: ProviderConfig) -> ProviderConfig:
        """Insert or replace; when ``config.enabled`` its siblings are disabled."""

    @abstractmethod
    async def set_enabled(self, config_id: str, enabled: bool) -> ProviderConfig: ...

    @abstractmethod
    async def delete(self, config_id: str) -> None: ...

    async def list_by_capability(self, capability: Capability) -> list[ProviderConfig]:
        return [c for c in await self.list_all() if c.capability == capability]

    async def get_enabled(self, capability: Capability) -> ProviderConfig | None:
        for config in await self.list_by_capability(capability):
            if config.enabled:
                return config
        return None

    async def toggle(self, config_id: str) -> ProviderConfig:
        config = await self.get(config_id)
        if config is None:
            raise ConfigNotFound(config_id)
        return await self.set_enabled(config_id, not config.enabled)

    async def seed_defaults(self) -> int:
        """Insert the default configuration set when the store is empty."""
        if await self.list_all():
            return 0
        for config in DEFAULT_CONFIGS:
            await self.save(config)
        logger.info("Seeded %d default provider configs", len(DEFAULT_CONFIGS))
        return len(DEFAULT_CONFIGS)


class InMemoryProviderConfigStore(ProviderConfigStore):
    """Dict-backed store; mutations are serialized by one asyncio lock."""

    def __init__(self, configs: list[ProviderConfig] | None = None):
        self._configs: dict[str, ProviderConfig] = {}
        self._lock = asyncio.Lock()
        for config in configs or []:
            self._put(config)

    def _put(self, config: ProviderConfig) -> ProviderConfig:
        if config.enabled:
            for sibling in list(self._configs.values()):
                if (
                    sibling.id != config.id
                    and sibling.capability == config.capability
                    and sibling.enabled
                ):
                    self._configs[sibling.id] = sibling.model_copy(update={"enabled": False})
        self._configs[config.id] = config
        return config

    async def get(self, config_id: str) -> ProviderConfig | None:
        return self._configs.get(config_id)

    async def list_all(self) -> list[ProviderConfig]:
        return list(self._configs.values())

    async def save(self, config: ProviderConfig) -> ProviderConfig:
        async with self._lock:
            return self._put(config)

    async def set_enabled(self, config_id: str, enabled: bool) -> ProviderConfig:
        async with self._lock:
            current = self._configs.get(config_id)
            if current is None:
                raise ConfigNotFound(config_id)
            return self._put(current.model_copy(update={"enabled": enabled}))

    async def delete(self, config_id: str) -> None:
        async with self._lock:
            if self._configs.pop(config_id, None) is None:
                raise ConfigNotFound(config_id)


class SqlProviderConfigStore(ProviderConfigStore):
    """SQLAlchemy-backed store; each mutation runs in one transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_config(row: ProviderConfigRow) -> ProviderConfig:
        return ProviderConfig.model_validate(row)

    @staticmethod
    async def _disable_siblings(session: AsyncSession, config_id: str, capability: str) -> None:
        await session.execute(
            update(ProviderConfigRow)
            .where(
                ProviderConfigRow.capability == capability,
                ProviderConfigRow.id != config_id,
            )
            .values(enabled=False)
        )

    async def get(self, config_id: str) -> ProviderConfig | None:
        async with self._session_factory() as session:
            row = await session.get(ProviderConfigRow, config_id)
            return self._to_config(row) if row else None

    async def list_all(self) -> list[ProviderConfig]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderConfigRow).order_by(ProviderConfigRow.capability, ProviderConfigRow.id)
            )
            return [self._to_config(row) for row in result.scalars()]

    async def list_by_capability(self, capability: Capability) -> list[ProviderConfig]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderConfigRow)
                .where(ProviderConfigRow.capability == capability.value)
                .order_by(ProviderConfigRow.id)
            )
            return [self._to_config(row) for row in result.scalars()]

    async def save(self, config: ProviderConfig) -> ProviderConfig:
        async with self._session_factory() as session, session.begin():
            if config.enabled:
                await self._disable_siblings(session, config.id, config.capability.value)
            row = await session.get(ProviderConfigRow, config.id)
            if row is None:
                row = ProviderConfigRow(id=config.id)
                session.add(row)
            row.provider = config.provider.value
            row.capability = config.capability.value
            row.model = config.model
            row.api_key = config.api_key.get_secret_value()
            row.api_url = config.api_url
            row.enabled = config.enabled
            row.description = config.description
        return config

    async def set_enabled(self, config_id: str, enabled: bool) -> ProviderConfig:
        async with self._session_factory() as session, session.begin():
            row = await session.get(ProviderConfigRow, config_id)
            if row is None:
                raise ConfigNotFound(config_id)
            if enabled:
                await self._disable_siblings(session, row.id, row.capability)
            row.enabled = enabled
            await session.flush()
            return self._to_config(row)

    async def delete(self, config_id: str) -> None:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(ProviderConfigRow).where(ProviderConfigRow.id == config_id)
            )
            if result.rowcount == 0:
                raise ConfigNotFound(config_id)
