"""Artifact persistence pipeline — relocate finished media to caller storage.

Best-effort by contract: any failure is logged and the original location is
returned, so persistence can never fail a generation request.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable
from urllib.parse import urlsplit, urlunsplit

import httpx

from cinegen.config import get_settings
from cinegen.schemas.provider_config import Capability
from cinegen.services.errors import PersistenceUnavailable
from cinegen.services.reference_assets import detect_extension, parse_data_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """A produced media object, before or after persistence."""
    origin: str
    capability: Capability
    provider: str
    media_type: str = "image"
    public_url: str | None = None

    @property
    def location(self) -> str:
        return self.public_url or self.origin

    @property
    def persisted(self) -> bool:
        return self.public_url is not None and self.public_url != self.origin

    def with_public_url(self, url: str) -> "Artifact":
        return replace(self, public_url=url)


def rewrite_public_url(stored_url: str, access_domain: str = "") -> str:
    """Keep the path, drop the query, and swap in the access domain.

    ``http(s)://`` domains are used as-is; bare hosts become protocol-relative.
    Without a domain the storage service's own authority is kept.
    """
    parts = urlsplit(stored_url)
    if not parts.netloc:
        return stored_url.split("?", 1)[0].split("#", 1)[0]
    path = parts.path
    if not access_domain:
        return urlunsplit((parts.scheme, parts.netloc, path, "", ""))
    domain = access_domain.rstrip("/")
    if domain.startswith("http"):
        return f"{domain}{path}"
    return f"//{domain}{path}"


class ArtifactPersistence:
    """Uploads artifacts to FILE_UPLOAD_SERVICE_URL as one form POST each."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        upload_url: str | None = None,
        access_domain: str | None = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = get_settings()
        self.http_client = http_client
        self.upload_url = settings.FILE_UPLOAD_SERVICE_URL if upload_url is None else upload_url
        self.access_domain = settings.FILE_ACCESS_DOMAIN if access_domain is None else access_domain
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.upload_url)

    async def persist(self, artifact: Artifact, category: str) -> str:
        """Relocate ``artifact`` and return its public URL (or its original location)."""
        return await self.upload(artifact.origin, category=category)

    async def upload(self, source: str, category: str) -> str:
        if not self.enabled:
            return source
        try:
            stored = await self._post(source, category)
        except PersistenceUnavailable as e:
            logger.warning("Persistence unavailable, keeping original location: %s", e)
            return source
        except httpx.HTTPError as e:
            logger.warning("Persistence upload failed, keeping original location: %s", e)
            return source
        try:
            public = rewrite_public_url(stored, self.access_domain)
        except (ValueError, TypeError) as e:
            logger.warning(
                "Stored URL %r could not be rewritten, keeping original location: %s", stored, e,
            )
            return source
        logger.info("Persisted %s artifact -> %s", category, public)
        return public

    def _form_fields(self, source: str, category: str) -> dict[str, str]:
        fields = {"fileType": category}
        parsed = parse_data_url(source)
        if parsed is None:
            fields["fileUrl"] = source
            return fields
        _, payload = parsed
        fields["fileBase64"] = payload
        fields["fileName"] = f"{int(self._clock() * 1000)}.{detect_extension(source)}"
        return fields

    async def _post(self, source: str, category: str) -> str:
        resp = await self.http_client.post(
            self.upload_url,
            data=self._form_fields(source, category),
            headers={"Accept": "*/*"},
        )
        if resp.status_code >= 400:
            raise PersistenceUnavailable(
                f"Upload service returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                raw_message=resp.text[:500],
            )
        try:
            body: Any = resp.json()
        except ValueError as e:
            raise PersistenceUnavailable("Upload service returned non-JSON body") from e

        if not isinstance(body, dict) or body.get("code") != 200:
            message = body.get("message", "") if isinstance(body, dict) else ""
            raise PersistenceUnavailable(
                "Upload service rejected the artifact", raw_message=str(message),
            )
        data = body.get("data") or {}
        file_url = data.get("fileUrl") if isinstance(data, dict) else None
        if not isinstance(file_url, str) or not file_url:
            raise PersistenceUnavailable(
                "Upload response carried no usable fileUrl", raw_message=resp.text[:500],
            )
        return file_url
