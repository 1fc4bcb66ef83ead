"""Async task poller: drives a backend task handle to a canonical terminal state.

Each adapter owns a StatusVocabulary translating its raw status strings into
TaskStatus; the poller never sees backend-specific strings past that table.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable

from cinegen.services.errors import (
    BackendRejected,
    BackendUnreachable,
    GenerationCancelled,
    GenerationError,
    RateLimited,
    TaskFailed,
    TaskTimedOut,
)

logger = logging.getLogger(__name__)


class TaskStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.TIMED_OUT)


@dataclass(frozen=True)
class StatusVocabulary:
    """Mapping table from one backend's raw status strings to TaskStatus.

    Lookup is exact first, then case-insensitive. Unknown strings map to
    RUNNING so polling continues; they are logged for visibility.
    """
    provider: str
    table: dict[str, TaskStatus]

    @classmethod
    def build(
        cls,
        provider: str,
        *,
        succeeded: Iterable[str] = (),
        failed: Iterable[str] = (),
        running: Iterable[str] = (),
    ) -> "StatusVocabulary":
        table: dict[str, TaskStatus] = {}
        for raw in running:
            table[raw] = TaskStatus.RUNNING
        for raw in failed:
            table[raw] = TaskStatus.FAILED
        for raw in succeeded:
            table[raw] = TaskStatus.SUCCEEDED
        return cls(provider=provider, table=table)

    def classify(self, raw: str | None) -> TaskStatus:
        if raw is None:
            logger.warning("%s: missing task status, treating as running", self.provider)
            return TaskStatus.RUNNING
        if raw in self.table:
            return self.table[raw]
        lowered = raw.lower()
        for key, status in self.table.items():
            if key.lower() == lowered:
                return status
        logger.warning("%s: unknown task status %r, treating as running", self.provider, raw)
        return TaskStatus.RUNNING


@dataclass(frozen=True)
class PollSettings:
    interval: float
    max_attempts: int


@dataclass
class StatusReport:
    """One status query outcome, already extracted from the backend payload."""
    raw_status: str | None
    result_url: str | None = None
    error: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationTask:
    """A backend job; mutated only by the poller, terminal states are final."""
    provider: str
    capability: str
    handle: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: TaskStatus = TaskStatus.SUBMITTED
    raw_status: str | None = None
    result_url: str | None = None
    error: str | None = None
    queries: int = 0

    def transition(
        self,
        status: TaskStatus,
        *,
        raw_status: str | None = None,
        result_url: str | None = None,
        error: str | None = None,
    ) -> None:
        if self.status.is_terminal:
            raise RuntimeError(
                f"Task {self.id} is already {self.status.value}; cannot move to {status.value}"
            )
        self.status = status
        if raw_status is not None:
            self.raw_status = raw_status
        if result_url is not None:
            self.result_url = result_url
        if error is not None:
            self.error = error


def is_transient_query_error(exc: BaseException) -> bool:
    """Transport faults, throttling and 5xx answers cost a poll attempt, not the task."""
    if isinstance(exc, (BackendUnreachable, RateLimited)):
        return True
    return isinstance(exc, BackendRejected) and exc.status_code >= 500


QueryFn = Callable[[str], Awaitable[StatusReport]]
FetchFn = Callable[[str, StatusReport], Awaitable[str | None]]
SleepFn = Callable[[float], Awaitable[Any]]


class TaskPoller:
    """Generic submit/poll/resolve state machine.

    Queries first, then waits ``interval`` between queries, for at most
    ``max_attempts`` queries. Cancellation via ``cancel`` stops further
    queries immediately and discards the result of a query already in flight.
    """

    def __init__(self, sleep: SleepFn | None = None):
        self._sleep = sleep or asyncio.sleep

    async def drive(
        self,
        task: GenerationTask,
        *,
        query: QueryFn,
        vocabulary: StatusVocabulary,
        settings: PollSettings,
        fetch_result: FetchFn | None = None,
        cancel: asyncio.Event | None = None,
    ) -> GenerationTask:
        context = {"provider": task.provider, "capability": task.capability}

        for attempt in range(settings.max_attempts):
            self._raise_if_cancelled(task, cancel)
            task.queries += 1
            try:
                report = await query(task.handle)
            except Exception as e:
                if not is_transient_query_error(e):
                    task.transition(TaskStatus.FAILED, error=str(e))
                    raise
                logger.warning(
                    "%s task %s poll %d/%d failed, will retry: %s",
                    task.provider, task.handle, attempt + 1, settings.max_attempts, e,
                )
                if attempt + 1 < settings.max_attempts:
                    await self._wait(settings.interval, cancel)
                continue

            # A query that finished after cancellation is discarded.
            self._raise_if_cancelled(task, cancel)

            status = vocabulary.classify(report.raw_status)
            logger.debug(
                "%s task %s poll %d/%d: %s -> %s",
                task.provider, task.handle, attempt + 1, settings.max_attempts,
                report.raw_status, status.value,
            )

            if status is TaskStatus.SUCCEEDED:
                return await self._resolve(task, report, fetch_result, context)

            if status is TaskStatus.FAILED:
                detail = report.error or report.raw_status or "unknown error"
                task.transition(TaskStatus.FAILED, raw_status=report.raw_status, error=detail)
                raise TaskFailed(
                    f"Task {task.handle} failed",
                    raw_message=detail,
                    **context,
                )

            if task.status is TaskStatus.SUBMITTED or task.raw_status != report.raw_status:
                task.transition(TaskStatus.RUNNING, raw_status=report.raw_status)

            if attempt + 1 < settings.max_attempts:
                await self._wait(settings.interval, cancel)

        task.transition(TaskStatus.TIMED_OUT)
        logger.warning(
            "%s task %s timed out after %d queries",
            task.provider, task.handle, settings.max_attempts,
        )
        raise TaskTimedOut(
            f"Task {task.handle} did not finish within {settings.max_attempts} status queries",
            **context,
        )

    async def _resolve(
        self,
        task: GenerationTask,
        report: StatusReport,
        fetch_result: FetchFn | None,
        context: dict[str, Any],
    ) -> GenerationTask:
        url = report.result_url
        if fetch_result is not None:
            try:
                url = await fetch_result(task.handle, report) or url
            except GenerationError as e:
                task.transition(TaskStatus.FAILED, raw_status=report.raw_status, error=e.message)
                raise TaskFailed(
                    f"Task {task.handle} finished but its result could not be fetched",
                    raw_message=e.raw_message or e.message,
                    **context,
                ) from e
        if not url:
            task.transition(
                TaskStatus.FAILED, raw_status=report.raw_status, error="no result url",
            )
            raise TaskFailed(f"Task {task.handle} succeeded without a result url", **context)

        task.transition(TaskStatus.SUCCEEDED, raw_status=report.raw_status, result_url=url)
        logger.info("%s task %s succeeded after %d queries", task.provider, task.handle, task.queries)
        return task

    def _raise_if_cancelled(self, task: GenerationTask, cancel: asyncio.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            logger.info("%s task %s cancelled by caller", task.provider, task.handle)
            raise GenerationCancelled(
                f"Task {task.handle} cancelled",
                provider=task.provider,
                capability=task.capability,
            )

    async def _wait(self, interval: float, cancel: asyncio.Event | None) -> None:
        if cancel is None:
            await self._sleep(interval)
            return
        sleeper = asyncio.ensure_future(self._sleep(interval))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waiter):
                if not pending.done():
                    pending.cancel()
