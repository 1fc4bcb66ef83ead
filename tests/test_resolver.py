"""Tests for capability resolution and adapter activation."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from cinegen.schemas.provider_config import Capability, ResolutionScope
from cinegen.services.config_store import InMemoryProviderConfigStore
from cinegen.services.errors import NoProviderConfigured
from cinegen.services.providers import build_registry
from cinegen.services.resolver import CapabilityResolver, ProviderRuntime
from conftest import IMAGE_KEY, make_config


def unused_client() -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def resolver_for(*configs) -> CapabilityResolver:
    store = InMemoryProviderConfigStore(list(configs))
    return CapabilityResolver(store, build_registry(unused_client()))


@pytest.mark.asyncio
async def test_default_scope_uses_the_enabled_config() -> None:
    resolver = resolver_for(
        make_config("img-off", "gemini", Capability.TEXT2IMAGE, enabled=False),
        make_config("img-on", "doubao", Capability.TEXT2IMAGE),
    )

    config = await resolver.resolve(Capability.TEXT2IMAGE)
    assert config.id == "img-on"


@pytest.mark.asyncio
async def test_request_scope_beats_project_scope() -> None:
    resolver = resolver_for(
        make_config("default", "doubao", Capability.TEXT2IMAGE),
        make_config("project", "gemini", Capability.TEXT2IMAGE, enabled=False),
        make_config("request", "openai", Capability.TEXT2IMAGE, enabled=False),
    )

    both = ResolutionScope(request="request", project="project")
    assert (await resolver.resolve(Capability.TEXT2IMAGE, both)).id == "request"
    project_only = ResolutionScope(project="project")
    assert (await resolver.resolve(Capability.TEXT2IMAGE, project_only)).id == "project"


@pytest.mark.asyncio
async def test_scoped_config_without_credential_falls_through() -> None:
    resolver = resolver_for(
        make_config("default", "doubao", Capability.LLM),
        make_config("keyless", "deepseek", Capability.LLM, api_key="  ", enabled=False),
    )

    scope = ResolutionScope(request="keyless", project="missing")
    assert (await resolver.resolve(Capability.LLM, scope)).id == "default"


@pytest.mark.asyncio
async def test_nothing_enabled_raises() -> None:
    resolver = resolver_for(make_config("off", "kling", Capability.IMAGE2VIDEO, enabled=False))

    with pytest.raises(NoProviderConfigured) as exc_info:
        await resolver.resolve(Capability.IMAGE2VIDEO)
    assert exc_info.value.capability == "image2video"


@pytest.mark.asyncio
async def test_resolution_is_deterministic() -> None:
    resolver = resolver_for(
        make_config("a", "doubao", Capability.TEXT2IMAGE),
        make_config("b", "gemini", Capability.TEXT2IMAGE, enabled=False),
    )
    scope = ResolutionScope(project="b")

    ids = {(await resolver.resolve(Capability.TEXT2IMAGE, scope)).id for _ in range(5)}
    assert ids == {"b"}


@pytest.mark.asyncio
async def test_activate_configures_adapter_and_snapshots() -> None:
    resolver = resolver_for(
        make_config(
            "img", "gemini", Capability.TEXT2IMAGE,
            api_key=IMAGE_KEY, model="gemini-2.5-flash-image",
        ),
    )

    adapter, runtime = await resolver.activate(Capability.TEXT2IMAGE)

    assert adapter.name == "gemini"
    assert runtime == ProviderRuntime(
        config_id="img",
        provider="gemini",
        capability=Capability.TEXT2IMAGE,
        model="gemini-2.5-flash-image",
        api_url="",
        api_key=IMAGE_KEY,
    )
    assert adapter.active(Capability.TEXT2IMAGE) is runtime
    assert IMAGE_KEY not in repr(runtime)


@pytest.mark.asyncio
async def test_reactivation_does_not_change_an_earlier_snapshot() -> None:
    store = InMemoryProviderConfigStore([
        make_config("first", "doubao", Capability.LLM, api_key="sk-first-000000000000"),
        make_config("second", "doubao", Capability.LLM, api_key="sk-second-00000000000", enabled=False),
    ])
    resolver = CapabilityResolver(store, build_registry(unused_client()))

    _, first = await resolver.activate(Capability.LLM)
    await store.set_enabled("second", True)
    adapter, second = await resolver.activate(Capability.LLM)

    assert first.api_key == "sk-first-000000000000"
    assert second.api_key == "sk-second-00000000000"
    assert adapter.active(Capability.LLM) is second


@pytest.mark.asyncio
async def test_fallback_only_when_nothing_resolves() -> None:
    fallback = make_config("fallback", "doubao", Capability.LLM)
    resolver = resolver_for(make_config("real", "deepseek", Capability.LLM))

    adapter, runtime = await resolver.activate(Capability.LLM, fallback=fallback)
    assert runtime.config_id == "real"
    assert adapter.name == "deepseek"

    empty = resolver_for()
    adapter, runtime = await empty.activate(Capability.LLM, fallback=fallback)
    assert runtime.config_id == "fallback"

    with pytest.raises(NoProviderConfigured):
        await empty.activate(Capability.LLM)


@pytest.mark.asyncio
async def test_request_scope_hit_skips_the_enabled_lookup() -> None:
    store = AsyncMock()
    store.get.return_value = make_config("req", "openai", Capability.LLM, enabled=False)
    resolver = CapabilityResolver(store, build_registry(unused_client()))

    config = await resolver.resolve(Capability.LLM, ResolutionScope(request="req"))

    assert config.id == "req"
    store.get.assert_awaited_once_with("req")
    store.get_enabled.assert_not_awaited()
