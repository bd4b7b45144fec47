from aduib_intercept.server.app import InterceptorServer
from aduib_intercept.server.background import MetadataSink, ObservabilityTaskTracker, SinkEntry
from aduib_intercept.server.binding import FromKeyedServices, FromPayload, FromServices, ParameterBinder
from aduib_intercept.server.chain import ChainExecutor
from aduib_intercept.server.context import (
    CancellationToken,
    NullProgressReporter,
    ProgressReporter,
    RequestContext,
    ServerSession,
)
from aduib_intercept.server.descriptor import InterceptorDescriptor, execution_order
from aduib_intercept.server.discovery import collect_interceptors, interceptor
from aduib_intercept.server.interceptor import ServerInterceptor
from aduib_intercept.server.invoker import InvocationEngine, normalize_result
from aduib_intercept.server.jsonrpc_app import InterceptorJsonRpcApp
from aduib_intercept.server.registry import InterceptorRegistry
from aduib_intercept.server.request_handler import InterceptorRequestHandler
from aduib_intercept.server.results import Findings, MetadataOnly, ModifiedPayload
from aduib_intercept.server.services import ScopedServiceResolver, ServiceResolver

__all__ = [
    "CancellationToken",
    "ChainExecutor",
    "Findings",
    "FromKeyedServices",
    "FromPayload",
    "FromServices",
    "InterceptorDescriptor",
    "InterceptorJsonRpcApp",
    "InterceptorRegistry",
    "InterceptorRequestHandler",
    "InterceptorServer",
    "InvocationEngine",
    "MetadataOnly",
    "MetadataSink",
    "ModifiedPayload",
    "NullProgressReporter",
    "ObservabilityTaskTracker",
    "ParameterBinder",
    "ProgressReporter",
    "RequestContext",
    "ScopedServiceResolver",
    "ServerInterceptor",
    "ServerSession",
    "ServiceResolver",
    "SinkEntry",
    "collect_interceptors",
    "execution_order",
    "interceptor",
    "normalize_result",
]
