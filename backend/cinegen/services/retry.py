"""Retry/backoff executor: retries rate-limited calls, surfaces everything else."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from cinegen.config import get_settings
from cinegen.services.errors import RateLimited, is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy for rate-limited calls."""
    max_attempts: int = 3
    base_delay: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt`` failed: base * 2^attempt."""
        return self.base_delay * (2 ** attempt)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=max(settings.RETRY_MAX_ATTEMPTS, 1),
            base_delay=settings.RETRY_BASE_DELAY,
        )


class RetryExecutor:
    """Wraps a single outbound call.

    Stateless per call: each ``run`` starts its own attempt counter, so
    independent calls never share a retry budget.
    """

    def __init__(self, policy: RetryPolicy | None = None, sleep: SleepFn | None = None):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        call: Callable[[], Awaitable[T]],
        *,
        label: str = "call",
        provider: str | None = None,
        capability: str | None = None,
    ) -> T:
        """Invoke ``call``; retry only rate-limit failures, no sleep after the last attempt."""
        last_error: BaseException | None = None
        for attempt in range(self.policy.max_attempts):
            try:
                return await call()
            except Exception as e:
                if not is_rate_limit_error(e):
                    raise
                last_error = e
                if attempt + 1 >= self.policy.max_attempts:
                    break
                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "[%s] rate limited on attempt %d/%d, backing off %.1fs",
                    label, attempt + 1, self.policy.max_attempts, delay,
                )
                await self._sleep(delay)

        logger.error("[%s] rate limit retry budget exhausted", label)
        if isinstance(last_error, RateLimited):
            raise last_error
        raise RateLimited(
            f"{label} still rate limited after {self.policy.max_attempts} attempts",
            provider=provider or getattr(last_error, "provider", None),
            capability=capability or getattr(last_error, "capability", None),
            status_code=getattr(last_error, "status_code", 0) or 429,
            raw_message=getattr(last_error, "raw_message", "") or str(last_error),
            backend_message=getattr(last_error, "backend_message", ""),
        ) from last_error
