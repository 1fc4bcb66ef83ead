"""Tests for the artifact persistence pipeline."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from cinegen.schemas.provider_config import Capability
from cinegen.services.persistence import Artifact, ArtifactPersistence, rewrite_public_url

UPLOAD_URL = "https://storage.internal/api/upload"


def form_of(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def storage(handler, **kwargs) -> ArtifactPersistence:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("upload_url", UPLOAD_URL)
    kwargs.setdefault("access_domain", "")
    return ArtifactPersistence(client, **kwargs)


def artifact(origin: str) -> Artifact:
    return Artifact(origin=origin, capability=Capability.TEXT2IMAGE, provider="doubao")


@pytest.mark.parametrize(
    "stored, domain, expected",
    [
        ("https://oss.internal/files/a/b.png?sig=1", "cdn.example.com", "//cdn.example.com/files/a/b.png"),
        ("https://oss.internal/files/a/b.png?sig=1", "https://cdn.example.com/", "https://cdn.example.com/files/a/b.png"),
        ("https://oss.internal/files/a/b.png?sig=1#x", "", "https://oss.internal/files/a/b.png"),
    ],
)
def test_rewrite_public_url(stored: str, domain: str, expected: str) -> None:
    assert rewrite_public_url(stored, domain) == expected


@pytest.mark.asyncio
async def test_remote_url_is_uploaded_by_reference() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(form_of(request))
        return httpx.Response(200, json={"code": 200, "data": {"fileUrl": "https://oss.internal/x/1.png?t=9"}})

    persistence = storage(handler, access_domain="cdn.example.com")
    url = await persistence.persist(artifact("https://tmp.backend.com/1.png"), "image")

    assert url == "//cdn.example.com/x/1.png"
    assert seen == [{"fileType": "image", "fileUrl": "https://tmp.backend.com/1.png"}]


@pytest.mark.asyncio
async def test_inline_artifact_is_uploaded_as_base64() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(form_of(request))
        return httpx.Response(200, json={"code": 200, "data": {"fileUrl": "https://oss.internal/x/2.jpg"}})

    persistence = storage(handler, clock=lambda: 1700000000.5)
    await persistence.persist(artifact("data:image/jpeg;base64,/9j/AAAA"), "character")

    assert seen == [{
        "fileType": "character",
        "fileBase64": "/9j/AAAA",
        "fileName": "1700000000500.jpg",
    }]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"code": 500, "message": "disk full"}),
        httpx.Response(200, json={"code": 200, "data": {}}),
        httpx.Response(200, json={"code": 200, "data": {"fileUrl": 12345}}),
        httpx.Response(200, json={"code": 200, "data": {"fileUrl": ["https://oss/a.png"]}}),
        httpx.Response(200, json={"code": 200, "data": {"fileUrl": "http://[::1/broken.png"}}),
    ],
)
async def test_failed_upload_returns_original_location(response: httpx.Response) -> None:
    persistence = storage(lambda request: response)
    origin = "https://tmp.backend.com/1.png"

    assert await persistence.persist(artifact(origin), "image") == origin


@pytest.mark.asyncio
async def test_transport_error_returns_original_location() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    persistence = storage(handler)
    assert await persistence.upload("data:image/png;base64,iVBOR", "image") == "data:image/png;base64,iVBOR"


@pytest.mark.asyncio
async def test_disabled_persistence_is_a_no_op() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no upload expected")

    persistence = storage(handler, upload_url="")
    assert not persistence.enabled
    assert await persistence.persist(artifact("https://tmp/1.png"), "image") == "https://tmp/1.png"


def test_artifact_location_prefers_public_url() -> None:
    raw = artifact("https://tmp/1.png")
    assert raw.location == "https://tmp/1.png"
    assert not raw.persisted

    stored = raw.with_public_url("//cdn.example.com/1.png")
    assert stored.location == "//cdn.example.com/1.png"
    assert stored.persisted
    assert not raw.with_public_url(raw.origin).persisted
