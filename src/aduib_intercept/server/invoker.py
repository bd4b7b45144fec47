from __future__ import annotations

import asyncio
import contextvars
import functools
import inspect
import logging
import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from contextlib import AsyncExitStack
from typing import Any

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from aduib_intercept.exceptions import HandlerFailureError, InterceptorException, ResultKindMismatchError
from aduib_intercept.observability.logging import LogContext
from aduib_intercept.observability.metrics import InterceptorMetrics
from aduib_intercept.protocol.types import InterceptorType, InvokeInterceptorResult, ValidationResult
from aduib_intercept.server.binding import BoundArguments
from aduib_intercept.server.context import RequestContext
from aduib_intercept.server.interceptor import ServerInterceptor
from aduib_intercept.server.results import Findings, MetadataOnly, ModifiedPayload

logger = logging.getLogger(__name__)

_PAYLOAD_TYPES = (Mapping, list, tuple, str, int, float, bool, BaseModel)


class InvocationEngine:
    """Runs one interceptor for one request and normalizes what it returns.

    Synchronous handlers run on the engine's thread pool so a blocking handler
    never stalls the event loop; async handlers are awaited on the loop.

    Args:
        max_workers: Thread pool size (None = executor default).
        metrics: Metrics sink; a private one is created when omitted.
        executor: Externally owned executor to use instead of a private pool.
    """

    def __init__(
        self,
        max_workers: int | None = None,
        metrics: InterceptorMetrics | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._owns_executor = executor is None
        self._max_workers = max_workers
        self._executor = executor or self._new_executor()
        self.metrics = metrics or InterceptorMetrics()
        self._closed = False

    async def invoke(self, interceptor: ServerInterceptor, context: RequestContext) -> InvokeInterceptorResult:
        """Bind, call and normalize a single interceptor.

        Binder and engine errors propagate as raised; any other exception from
        the handler or its target factory is wrapped in ``HandlerFailureError``.
        """
        if self._closed:
            raise RuntimeError("InvocationEngine is closed")
        descriptor = interceptor.descriptor
        status = "ok"
        started = time.perf_counter()
        with LogContext(interceptor_id=descriptor.id):
            try:
                context.cancellation.raise_if_cancelled(descriptor.id)
                bound = interceptor.binder.bind(context)
                async with AsyncExitStack() as stack:
                    target = await self._enter_target(interceptor, context, stack)
                    raw = await self._call(interceptor, target, bound)
                return normalize_result(interceptor, raw)
            except asyncio.CancelledError:
                status = "cancelled"
                raise
            except InterceptorException:
                status = "error"
                raise
            except Exception as exc:
                status = "error"
                logger.debug("Interceptor %s raised %s", descriptor.id, type(exc).__name__)
                raise HandlerFailureError(
                    message=f"Interceptor '{descriptor.id}' failed: {exc}",
                    interceptor_id=descriptor.id,
                    cause=exc,
                ) from exc
            finally:
                await self.metrics.record_invocation(
                    interceptor=descriptor.id,
                    kind=descriptor.kind.value,
                    phase=context.params.phase.value,
                    status=status,
                    duration_seconds=time.perf_counter() - started,
                )

    async def _enter_target(
        self, interceptor: ServerInterceptor, context: RequestContext, stack: AsyncExitStack
    ) -> Any:
        if interceptor.target_factory is None:
            return None
        target = interceptor.target_factory(context)
        if inspect.isawaitable(target):
            target = await target
        if hasattr(target, "__aenter__") and hasattr(target, "__aexit__"):
            return await stack.enter_async_context(target)
        if hasattr(target, "__enter__") and hasattr(target, "__exit__"):
            return stack.enter_context(target)
        if callable(getattr(target, "aclose", None)):
            stack.push_async_callback(target.aclose)
        elif callable(getattr(target, "close", None)):
            stack.callback(target.close)
        return target

    async def _call(self, interceptor: ServerInterceptor, target: Any, bound: BoundArguments) -> Any:
        args = bound.args if interceptor.target_factory is None else [target, *bound.args]
        if interceptor.is_async:
            result = interceptor.handler(*args, **bound.kwargs)
        else:
            loop = asyncio.get_running_loop()
            ctx = contextvars.copy_context()
            call = functools.partial(ctx.run, interceptor.handler, *args, **bound.kwargs)
            result = await loop.run_in_executor(self._executor, call)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def closed(self) -> bool:
        return self._closed

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="aduib-intercept")

    def open(self) -> None:
        """Accept work again after ``close``, with a fresh pool if the engine owns one."""
        if not self._closed:
            return
        if self._owns_executor:
            self._executor = self._new_executor()
        self._closed = False

    def close(self) -> None:
        """Release the thread pool if the engine owns it."""
        if self._closed:
            return
        self._closed = True
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)


def normalize_result(interceptor: ServerInterceptor, raw: Any) -> InvokeInterceptorResult:
    """Map whatever a handler returned onto an ``InvokeInterceptorResult``."""
    kind = interceptor.kind
    if raw is None:
        return InvokeInterceptorResult()
    if isinstance(raw, InvokeInterceptorResult):
        if kind is not InterceptorType.MUTATION and raw.modified_payload is not None:
            logger.warning("Dropping modified payload returned by %s interceptor %s", kind.value, interceptor.id)
            return raw.model_copy(update={"modified_payload": None})
        return raw
    if isinstance(raw, ValidationResult):
        return InvokeInterceptorResult(validation_results=[raw])
    if isinstance(raw, ModifiedPayload):
        _require_kind(interceptor, InterceptorType.MUTATION, "ModifiedPayload")
        return InvokeInterceptorResult(modified_payload=to_jsonable_python(raw.payload), metadata=raw.metadata)
    if isinstance(raw, Findings):
        _require_kind(interceptor, InterceptorType.VALIDATION, "Findings")
        return InvokeInterceptorResult(validation_results=list(raw.results), metadata=raw.metadata)
    if isinstance(raw, MetadataOnly):
        return InvokeInterceptorResult(metadata=dict(raw.metadata))
    if isinstance(raw, list | tuple) and raw and all(isinstance(item, ValidationResult) for item in raw):
        return InvokeInterceptorResult(validation_results=list(raw))
    if isinstance(raw, _PAYLOAD_TYPES):
        if kind is InterceptorType.MUTATION:
            return InvokeInterceptorResult(modified_payload=to_jsonable_python(raw))
        logger.debug("Discarding payload-shaped return value of %s interceptor %s", kind.value, interceptor.id)
        return InvokeInterceptorResult()
    logger.debug("Ignoring unsupported return type %s from %s", type(raw).__name__, interceptor.id)
    return InvokeInterceptorResult()


def _require_kind(interceptor: ServerInterceptor, expected: InterceptorType, variant: str) -> None:
    if interceptor.kind is not expected:
        raise ResultKindMismatchError(
            message=(
                f"Interceptor '{interceptor.id}' is a {interceptor.kind.value} interceptor "
                f"but returned {variant}"
            ),
            interceptor_id=interceptor.id,
            data={"kind": interceptor.kind.value, "variant": variant},
        )
