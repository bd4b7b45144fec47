"""Detached execution of observability interceptors.

Observability interceptors never contribute to a response. Their tasks are
tracked here so that shutdown can wait for them (bounded) and cancel the
stragglers, and their metadata and failures land in a ``MetadataSink``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from aduib_intercept.observability.metrics import InterceptorMetrics
from aduib_intercept.protocol.types import InvokeInterceptorResult
from aduib_intercept.server.context import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class SinkEntry:
    interceptor_id: str
    metadata: dict[str, Any] | None = None
    error: str | None = None
    recorded_at: float = field(default_factory=time.time)

    @property
    def failed(self) -> bool:
        return self.error is not None


class MetadataSink:
    """Side channel keyed by interceptor id for detached interceptor output.

    Keeps the most recent ``max_entries_per_interceptor`` entries per id.
    """

    def __init__(self, max_entries_per_interceptor: int = 100) -> None:
        self._max_entries = max_entries_per_interceptor
        self._entries: dict[str, deque[SinkEntry]] = {}
        self._lock = threading.Lock()

    def record_metadata(self, interceptor_id: str, metadata: dict[str, Any]) -> None:
        self._append(SinkEntry(interceptor_id=interceptor_id, metadata=dict(metadata)))

    def record_failure(self, interceptor_id: str, error: BaseException | str) -> None:
        if isinstance(error, BaseException):
            error = f"{type(error).__name__}: {error}"
        self._append(SinkEntry(interceptor_id=interceptor_id, error=error))

    def entries(self, interceptor_id: str) -> list[SinkEntry]:
        with self._lock:
            return list(self._entries.get(interceptor_id, ()))

    def latest_metadata(self, interceptor_id: str) -> dict[str, Any] | None:
        for entry in reversed(self.entries(interceptor_id)):
            if entry.metadata is not None:
                return entry.metadata
        return None

    def failures(self, interceptor_id: str | None = None) -> list[SinkEntry]:
        with self._lock:
            if interceptor_id is not None:
                pool = list(self._entries.get(interceptor_id, ()))
            else:
                pool = [entry for bucket in self._entries.values() for entry in bucket]
        return [entry for entry in pool if entry.failed]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _append(self, entry: SinkEntry) -> None:
        with self._lock:
            bucket = self._entries.get(entry.interceptor_id)
            if bucket is None:
                bucket = deque(maxlen=self._max_entries)
                self._entries[entry.interceptor_id] = bucket
            bucket.append(entry)


class ObservabilityTaskTracker:
    """Owns the fire-and-forget tasks of observability interceptors.

    Lifecycle: ``start()`` before spawning, ``drain(timeout)`` at shutdown.
    Tasks see ``shutdown_token`` as their cancellation signal; it is cancelled
    when the drain grace period runs out.
    """

    def __init__(
        self,
        sink: MetadataSink | None = None,
        metrics: InterceptorMetrics | None = None,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS,
    ) -> None:
        self.sink = sink or MetadataSink()
        self.metrics = metrics or InterceptorMetrics()
        self.drain_timeout = drain_timeout
        self.shutdown_token = CancellationToken()
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def start(self) -> None:
        if self._running:
            return
        if self.shutdown_token.cancelled:
            self.shutdown_token = CancellationToken()
        self._running = True
        logger.debug("Observability task tracker started")

    def spawn(
        self,
        interceptor_id: str,
        factory: Callable[[], Awaitable[InvokeInterceptorResult]],
    ) -> asyncio.Task[None] | None:
        """Run ``factory()`` detached; returns the task, or None when not running."""
        if not self._running:
            logger.error("Observability interceptor %s not started: task tracker is not running", interceptor_id)
            self.sink.record_failure(interceptor_id, "task tracker is not running")
            return None
        task = asyncio.create_task(self._run(interceptor_id, factory), name=f"observability:{interceptor_id}")
        self._tasks.add(task)
        self.metrics.background_tasks.inc()
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, interceptor_id: str, factory: Callable[[], Awaitable[InvokeInterceptorResult]]) -> None:
        try:
            result = await factory()
        except asyncio.CancelledError:
            logger.warning("Observability interceptor %s cancelled", interceptor_id)
            self.sink.record_failure(interceptor_id, "cancelled")
            raise
        except Exception as exc:
            logger.warning("Observability interceptor %s failed: %s", interceptor_id, exc, exc_info=True)
            self.sink.record_failure(interceptor_id, exc)
            return
        if result.metadata:
            self.sink.record_metadata(interceptor_id, result.metadata)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        self.metrics.background_tasks.dec()

    async def wait_idle(self) -> None:
        """Wait for every task spawned so far, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def drain(self, timeout: float | None = None) -> None:
        """Stop accepting work, wait up to ``timeout`` seconds, then cancel what is left."""
        self._running = False
        timeout = self.drain_timeout if timeout is None else timeout
        tasks = list(self._tasks)
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if not pending:
            return
        logger.warning("Cancelling %d observability task(s) still running after %.2fs", len(pending), timeout)
        self.shutdown_token.cancel("server shutting down")
        for task in pending:
            logger.warning("Cancelling observability task %s", task.get_name())
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
