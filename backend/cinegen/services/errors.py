"""Generation error taxonomy.

Every error raised by the orchestration core derives from GenerationError and
carries enough context (provider, capability, raw backend message) to
diagnose a failure. Credential values handed in via ``secrets`` are scrubbed
from both the message and the raw backend text before the exception exists.
"""

from __future__ import annotations

import re
from typing import Iterable

from cinegen.schemas.provider_config import mask_key


def scrub(text: str, secrets: Iterable[str] = ()) -> str:
    """Replace every non-empty secret occurring in text with its masked form."""
    for secret in secrets:
        if secret and secret in text:
            text = text.replace(secret, mask_key(secret))
    return text


class GenerationError(Exception):
    """Base error for the generation core."""

    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        capability: str | None = None,
        status_code: int = 0,
        raw_message: str = "",
        backend_message: str = "",
        secrets: Iterable[str] = (),
    ):
        secrets = tuple(secrets)
        self.message = scrub(message, secrets)
        self.raw_message = scrub(raw_message, secrets)
        self.backend_message = scrub(backend_message, secrets)
        self.provider = provider
        self.capability = capability
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "provider": self.provider,
            "capability": self.capability,
            "status_code": self.status_code,
            "raw_message": self.raw_message,
            "backend_message": self.backend_message,
        }

    def __str__(self) -> str:
        context = "/".join(p for p in (self.provider, self.capability) if p)
        return f"[{context}] {self.message}" if context else self.message


class NoProviderConfigured(GenerationError):
    """No configuration resolved for the capability; never retried."""

    http_status = 409


class RateLimited(GenerationError):
    """Backend throttled the call and the retry budget is exhausted."""

    http_status = 429


class BackendRejected(GenerationError):
    """Validation, auth or malformed-request failure; never retried."""

    http_status = 502


class UnsupportedCapability(BackendRejected):
    """Adapter asked for a capability outside its support matrix."""


class BackendUnreachable(GenerationError):
    """Transport failure or timeout talking to a backend."""

    http_status = 502


class TaskFailed(GenerationError):
    """Backend reported terminal failure for an asynchronous task."""

    http_status = 502


class TaskTimedOut(GenerationError):
    """Polling budget exhausted; the job may still complete server-side."""

    http_status = 504


class GenerationCancelled(GenerationError):
    """Caller withdrew interest before the task reached a terminal state."""

    http_status = 499


class PersistenceUnavailable(GenerationError):
    """Artifact upload failed; only ever logged, never surfaced to callers."""


# Backend-message markers that classify an error as rate limiting.
RATE_LIMIT_MARKERS = ("quota", "RATE_LIMIT", "RESOURCE_EXHAUSTED")

_STATUS_429 = re.compile(r"\b429\b")


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True when exc signals throttling by status or message marker."""
    if isinstance(exc, RateLimited):
        return True
    if isinstance(exc, (NoProviderConfigured, GenerationCancelled, TaskFailed, TaskTimedOut)):
        return False
    if getattr(exc, "status_code", 0) == 429:
        return True
    if isinstance(exc, GenerationError):
        # Raw bodies carry request ids and timestamps; only the parsed message counts.
        text = f"{exc.message} {exc.backend_message}"
    else:
        text = str(exc)
        if _STATUS_429.search(text):
            return True
    return any(marker in text for marker in RATE_LIMIT_MARKERS)
