"""Caller-side batch throttle — serialize items with a configurable inter-item delay.

Keeps batches such as "generate images for all characters" under external
rate limits. A failed item does not stop the batch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from cinegen.config import get_settings
from cinegen.services.errors import GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
X = TypeVar("X")


@dataclass
class BatchItemResult(Generic[T]):
    index: int
    value: T | None = None
    error: GenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchThrottle:
    """Runs items one at a time, sleeping ``delay`` seconds between them."""

    def __init__(
        self,
        delay: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ):
        self.delay = get_settings().BATCH_ITEM_DELAY if delay is None else delay
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        items: Iterable[X],
        worker: Callable[[X], Awaitable[T]],
    ) -> list[BatchItemResult[T]]:
        results: list[BatchItemResult[T]] = []
        for index, item in enumerate(items):
            if index and self.delay > 0:
                await self._sleep(self.delay)
            try:
                value = await worker(item)
            except GenerationError as e:
                logger.warning("Batch item %d failed: %s", index, e)
                results.append(BatchItemResult(index=index, error=e))
                continue
            results.append(BatchItemResult(index=index, value=value))
        failed = sum(1 for r in results if not r.ok)
        logger.info("Batch finished: %d items, %d failed", len(results), failed)
        return results
