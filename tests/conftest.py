from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from aduib_intercept.protocol.types import (
    ExecuteChainRequestParams,
    InterceptorPhase,
    InvokeInterceptorRequestParams,
)
from aduib_intercept.server.background import MetadataSink, ObservabilityTaskTracker
from aduib_intercept.server.chain import ChainExecutor
from aduib_intercept.server.context import RequestContext
from aduib_intercept.server.interceptor import ServerInterceptor
from aduib_intercept.server.invoker import InvocationEngine
from aduib_intercept.server.registry import InterceptorRegistry


@pytest.fixture
def registry() -> InterceptorRegistry:
    return InterceptorRegistry()


@pytest.fixture
def engine():
    engine = InvocationEngine(max_workers=4)
    yield engine
    engine.close()


@pytest.fixture
def sink() -> MetadataSink:
    return MetadataSink()


@pytest.fixture
def tracker(sink: MetadataSink) -> ObservabilityTaskTracker:
    tracker = ObservabilityTaskTracker(sink=sink, drain_timeout=1.0)
    tracker.start()
    return tracker


@pytest.fixture
def executor(registry, engine, tracker) -> ChainExecutor:
    return ChainExecutor(registry, engine, tracker)


@pytest.fixture
def add(registry) -> Callable[..., ServerInterceptor]:
    """Register ``fn`` as an interceptor and return it."""

    def _add(fn: Callable[..., Any], **options: Any) -> ServerInterceptor:
        interceptor = ServerInterceptor.from_function(fn, **options)
        registry.register(interceptor)
        return interceptor

    return _add


def chain_request(
    ids: list[str],
    payload: Any = None,
    phase: InterceptorPhase = InterceptorPhase.REQUEST,
    event: str = "tools/call",
) -> ExecuteChainRequestParams:
    return ExecuteChainRequestParams(interceptor_ids=ids, event=event, phase=phase, payload=payload)


def invoke_context(
    interceptor_id: str = "probe",
    payload: Any = None,
    phase: InterceptorPhase = InterceptorPhase.REQUEST,
    **kwargs: Any,
) -> RequestContext:
    params = InvokeInterceptorRequestParams(
        interceptor_id=interceptor_id,
        event="tools/call",
        phase=phase,
        payload=payload,
        meta=kwargs.pop("meta", None),
    )
    return RequestContext(params=params, **kwargs)


@pytest.fixture
def make_chain_request():
    return chain_request


@pytest.fixture
def make_context():
    return invoke_context
