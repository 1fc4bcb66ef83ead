"""Reference-asset normalizer and data-URL helpers.

Adapters declare whether they want reference images as remote URLs or as
inline base64 data URLs. Conversion is best-effort: when a fetch or upload
fails the original reference passes through untouched, and adapters must
tolerate receiving a form they did not ask for.
"""

from __future__ import annotations

import base64
import enum
import logging
import re
from typing import TYPE_CHECKING

import httpx

from cinegen.schemas.generation import ReferenceAsset

if TYPE_CHECKING:
    from cinegen.services.persistence import ArtifactPersistence

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]*)*?);base64,(?P<data>.*)$", re.S)
_MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/svg+xml": "svg",
    "video/quicktime": "mov",
}


class AssetForm(str, enum.Enum):
    URL = "url"
    INLINE = "inline"


def form_of(source: str) -> AssetForm:
    return AssetForm.INLINE if source.startswith("data:") else AssetForm.URL


def parse_data_url(source: str) -> tuple[str, str] | None:
    """Split a base64 data URL into (mime, payload); None when not a data URL."""
    match = _DATA_URL_RE.match(source)
    if not match:
        return None
    return match.group("mime") or "application/octet-stream", match.group("data")


def strip_data_url_prefix(source: str) -> str:
    """Return the raw base64 payload, or ``source`` unchanged when it has no prefix."""
    parsed = parse_data_url(source)
    return parsed[1] if parsed else source


def to_data_url(payload: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(payload).decode('ascii')}"


def detect_extension(source: str, default: str = "png") -> str:
    """File extension for a data URL (or bare mime type); ``default`` when unknown."""
    mime = source
    if source.startswith("data:"):
        parsed = parse_data_url(source)
        if not parsed:
            return default
        mime = parsed[0]
    if "/" not in mime:
        return default
    if mime in _MIME_EXTENSIONS:
        return _MIME_EXTENSIONS[mime]
    subtype = mime.split("/", 1)[1].split("+", 1)[0]
    return subtype or default


class ReferenceAssetNormalizer:
    """Converts references between remote-URL and inline forms."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        persistence: "ArtifactPersistence | None" = None,
    ):
        self.http_client = http_client
        self.persistence = persistence

    async def normalize(self, source: str, target: AssetForm) -> str:
        """Return ``source`` in ``target`` form, or unchanged when conversion fails."""
        if form_of(source) is target:
            return source
        if target is AssetForm.INLINE:
            return await self._inline(source)
        return await self._upload(source)

    async def normalize_asset(self, asset: ReferenceAsset, target: AssetForm) -> ReferenceAsset:
        converted = await self.normalize(asset.source, target)
        if converted == asset.source:
            return asset
        return asset.model_copy(update={"source": converted})

    async def normalize_all(
        self, assets: list[ReferenceAsset] | tuple[ReferenceAsset, ...], target: AssetForm,
    ) -> list[ReferenceAsset]:
        return [await self.normalize_asset(asset, target) for asset in assets]

    async def _inline(self, url: str) -> str:
        try:
            resp = await self.http_client.get(url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not inline reference %s, passing URL through: %s", url, e)
            return url
        mime = resp.headers.get("content-type", "image/png").split(";", 1)[0].strip() or "image/png"
        return to_data_url(resp.content, mime)

    async def _upload(self, source: str) -> str:
        if self.persistence is None or not self.persistence.enabled:
            logger.debug("No storage endpoint; inline reference passed through")
            return source
        return await self.persistence.upload(source, category="reference")
