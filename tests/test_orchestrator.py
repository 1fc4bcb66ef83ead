"""End-to-end tests for the generation orchestrator."""

from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs

import httpx
import pytest

from cinegen.config import Settings
from cinegen.schemas.generation import (
    AssetRole,
    GenerationRequest,
    ImageOptions,
    ReferenceAsset,
    VideoOptions,
)
from cinegen.schemas.provider_config import Capability, ResolutionScope
from cinegen.services.composition import GridComposer
from cinegen.services.config_store import InMemoryProviderConfigStore
from cinegen.services.errors import NoProviderConfigured, TaskTimedOut
from cinegen.services.orchestrator import GeneratedText, GenerationOrchestrator, fallback_configs
from cinegen.services.persistence import ArtifactPersistence
from cinegen.services.poller import TaskPoller
from cinegen.services.providers import build_registry
from cinegen.services.reference_assets import ReferenceAssetNormalizer
from cinegen.services.resolver import CapabilityResolver
from cinegen.services.retry import RetryExecutor, RetryPolicy
from conftest import IMAGE_KEY, LLM_KEY, VIDEO_KEY, make_config

UPLOAD_URL = "https://storage.internal/api/upload"


def build(handler, configs, sleeper, *, upload_url=UPLOAD_URL, access_domain="cdn.example.com", timeout=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    registry = build_registry(
        client,
        retry=RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0), sleep=sleeper),
        poller=TaskPoller(sleep=sleeper),
    )
    persistence = ArtifactPersistence(client, upload_url=upload_url, access_domain=access_domain)
    normalizer = ReferenceAssetNormalizer(client, persistence)
    return GenerationOrchestrator(
        CapabilityResolver(InMemoryProviderConfigStore(list(configs)), registry),
        normalizer,
        persistence,
        GridComposer(normalizer, mode="model"),
        fallbacks={},
        timeout=timeout,
    )


def upload_response(request: httpx.Request, stored: str) -> httpx.Response:
    return httpx.Response(200, json={"code": 200, "data": {"fileUrl": stored}})


@pytest.mark.asyncio
async def test_image_is_generated_persisted_and_rewritten(sleeper) -> None:
    uploads: list[dict] = []
    prompts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == UPLOAD_URL:
            uploads.append({k: v[0] for k, v in parse_qs(request.content.decode()).items()})
            return upload_response(request, "https://oss.internal/images/abc.png?Expires=1")
        prompts.append(json.loads(request.content)["prompt"])
        assert request.headers["Authorization"] == f"Bearer {IMAGE_KEY}"
        return httpx.Response(200, json={"data": [{"url": "https://ark.tmp/abc.png?sig=x"}]})

    orchestrator = build(
        handler, [make_config("img", "doubao", Capability.TEXT2IMAGE, api_key=IMAGE_KEY)], sleeper,
    )
    refs = [ReferenceAsset(source="https://cdn.example.com/scene.png", role=AssetRole.ENVIRONMENT)]

    artifact = await orchestrator.resolve_and_generate_image("雨夜街头", refs, ImageOptions(style="赛博朋克"))

    assert artifact.location == "//cdn.example.com/images/abc.png"
    assert artifact.origin == "https://ark.tmp/abc.png?sig=x"
    assert artifact.persisted
    assert uploads == [{"fileType": "image", "fileUrl": "https://ark.tmp/abc.png?sig=x"}]
    assert prompts == ["请使用 赛博朋克 风格创作图画，内容为雨夜街头参考图说明：第1张图是镜头布景、环境。"]


@pytest.mark.asyncio
async def test_character_image_uses_character_category(sleeper) -> None:
    categories: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == UPLOAD_URL:
            categories.append(parse_qs(request.content.decode())["fileType"][0])
            return upload_response(request, "https://oss.internal/c/1.png")
        return httpx.Response(200, json={"data": [{"url": "https://ark.tmp/c.png"}]})

    orchestrator = build(handler, [make_config("img", "doubao", Capability.TEXT2IMAGE)], sleeper)
    await orchestrator.resolve_and_generate_image("hero", options=ImageOptions(is_character=True))

    assert categories == ["character"]


@pytest.mark.asyncio
async def test_kling_video_polls_exactly_until_success(sleeper) -> None:
    statuses = iter(["Pending", "Pending", "Success"])
    queries: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == UPLOAD_URL:
            assert b"fileType=video" in request.content
            return upload_response(request, "https://oss.internal/videos/k.mp4")
        assert request.headers["Authorization"] == f"Bearer {VIDEO_KEY}"
        if request.method == "POST":
            return httpx.Response(200, json={"data": {"task_id": "kt-9"}})
        queries.append(request.url.path)
        status = next(statuses)
        data = {"status": status}
        if status == "Success":
            data["video_url"] = "https://kling.tmp/k.mp4"
        return httpx.Response(200, json={"data": data})

    orchestrator = build(
        handler, [make_config("vid", "kling", Capability.IMAGE2VIDEO, api_key=VIDEO_KEY)], sleeper,
    )

    artifact = await orchestrator.resolve_and_generate_video(
        "镜头缓慢推进", start="https://cdn.example.com/start.png", options=VideoOptions(duration=5),
    )

    assert len(queries) == 3
    assert sleeper.calls == [1.0, 1.0]
    assert artifact.media_type == "video"
    assert artifact.origin == "https://kling.tmp/k.mp4"
    assert artifact.location == "//cdn.example.com/videos/k.mp4"


@pytest.mark.asyncio
async def test_concurrent_capabilities_keep_their_own_credentials(sleeper) -> None:
    seen: list[tuple[str, str]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0)
        auth = request.headers["Authorization"]
        if request.url.path.endswith("/chat/completions"):
            seen.append(("llm", auth))
            return httpx.Response(200, json={"choices": [{"message": {"content": "text"}}]})
        seen.append(("image", auth))
        return httpx.Response(200, json={"data": [{"url": "https://ark.tmp/i.png"}]})

    orchestrator = build(
        handler,
        [
            make_config("llm", "doubao", Capability.LLM, api_key=LLM_KEY),
            make_config("img", "doubao", Capability.TEXT2IMAGE, api_key=IMAGE_KEY),
        ],
        sleeper,
        upload_url="",
    )

    calls = []
    for _ in range(5):
        calls.append(orchestrator.resolve_and_generate_text("hi"))
        calls.append(orchestrator.resolve_and_generate_image("pic"))
    results = await asyncio.gather(*calls)

    assert sum(isinstance(r, GeneratedText) for r in results) == 5
    assert {auth for kind, auth in seen if kind == "llm"} == {f"Bearer {LLM_KEY}"}
    assert {auth for kind, auth in seen if kind == "image"} == {f"Bearer {IMAGE_KEY}"}


@pytest.mark.asyncio
async def test_grid_for_non_native_backend_collects_panels_and_joins(sleeper) -> None:
    prompts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        prompts.append(body["prompt"])
        n = len(prompts)
        return httpx.Response(200, json={"data": [{"url": f"https://ark.tmp/{n}.png"}]})

    orchestrator = build(
        handler, [make_config("img", "doubao", Capability.TEXT2IMAGE)], sleeper, upload_url="",
    )

    artifact = await orchestrator.resolve_and_generate_image("四季", options=ImageOptions(count=4))

    # One grid request, three single panels, one join.
    assert len(prompts) == 5
    assert "4 宫格" in prompts[0]
    assert all("宫格" not in p for p in prompts[1:4])
    assert prompts[4].startswith("请将这些图片拼成一张4宫格图片")
    assert artifact.origin == "https://ark.tmp/5.png"
    assert not artifact.persisted


@pytest.mark.asyncio
async def test_grid_for_native_backend_is_one_call(sleeper) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [
            {"inlineData": {"mimeType": "image/png", "data": "R1JJRA=="}},
        ]}}]})

    orchestrator = build(
        handler, [make_config("img", "gemini", Capability.TEXT2IMAGE)], sleeper, upload_url="",
    )

    artifact = await orchestrator.resolve_and_generate_image("四季", options=ImageOptions(count=4))

    assert len(calls) == 1
    assert artifact.origin == "data:image/png;base64,R1JJRA=="


@pytest.mark.asyncio
async def test_nothing_configured_is_reported_and_counted(sleeper) -> None:
    orchestrator = build(lambda request: httpx.Response(500), [], sleeper)

    with pytest.raises(NoProviderConfigured):
        await orchestrator.resolve_and_generate_video("p", start="https://x/s.png")

    metrics = orchestrator.get_metrics()["image2video"]
    assert metrics["total_calls"] == 1
    assert metrics["total_errors"] == 1
    assert metrics["errors_by_type"] == {"NoProviderConfigured": 1}


@pytest.mark.asyncio
async def test_metrics_count_calls_per_provider(sleeper) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    orchestrator = build(handler, [make_config("llm", "deepseek", Capability.LLM)], sleeper)
    await orchestrator.resolve_and_generate_text("a")
    await orchestrator.resolve_and_generate_text("b")

    metrics = orchestrator.get_metrics()["llm"]
    assert metrics["total_calls"] == 2
    assert metrics["succeeded"] == 2
    assert metrics["calls_by_provider"] == {"deepseek": 2}


@pytest.mark.asyncio
async def test_scope_selects_project_config(sleeper) -> None:
    keys: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        keys.append(request.headers["Authorization"])
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    orchestrator = build(
        handler,
        [
            make_config("global", "doubao", Capability.LLM, api_key=LLM_KEY),
            make_config("proj", "deepseek", Capability.LLM, api_key=IMAGE_KEY, enabled=False),
        ],
        sleeper,
    )

    result = await orchestrator.generate(
        GenerationRequest(capability=Capability.LLM, prompt="hi", scope=ResolutionScope(project="proj")),
    )

    assert result.provider == "deepseek"
    assert keys == [f"Bearer {IMAGE_KEY}"]


@pytest.mark.asyncio
async def test_whole_call_timeout(sleeper) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={"choices": [{"message": {"content": "late"}}]})

    orchestrator = build(handler, [make_config("llm", "deepseek", Capability.LLM)], sleeper, timeout=0.05)

    with pytest.raises(TaskTimedOut):
        await orchestrator.resolve_and_generate_text("hi")


def test_fallback_configs_need_a_key() -> None:
    registry = build_registry(httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))

    assert fallback_configs(Settings(FALLBACK_API_KEY=""), registry) == {}

    configs = fallback_configs(Settings(FALLBACK_PROVIDER="deepseek", FALLBACK_API_KEY="sk-fallback"), registry)
    assert list(configs) == [Capability.LLM]
    assert configs[Capability.LLM].provider.value == "deepseek"
