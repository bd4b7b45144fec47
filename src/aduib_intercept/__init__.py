"""Public API for aduib_intercept.

Re-exports the supported surface of the interceptor engine. Import from here
when possible.
"""

from aduib_intercept.exceptions import (
    DuplicateInterceptorIdError,
    HandlerFailureError,
    InterceptorCancelledError,
    InterceptorException,
    MissingRequiredParameterError,
    MutationStepError,
    ParameterBindingError,
    ResultKindMismatchError,
    SerializationError,
    UnknownInterceptorIdError,
)
from aduib_intercept.protocol.types import (
    ExecuteChainRequestParams,
    ExecuteChainResult,
    InterceptorPhase,
    InterceptorType,
    InvokeInterceptorRequestParams,
    InvokeInterceptorResult,
    ValidationResult,
    ValidationSeverity,
)
from aduib_intercept.server import (
    CancellationToken,
    Findings,
    FromKeyedServices,
    FromPayload,
    FromServices,
    InterceptorRegistry,
    InterceptorServer,
    MetadataOnly,
    ModifiedPayload,
    ProgressReporter,
    ScopedServiceResolver,
    ServerInterceptor,
    ServerSession,
    ServiceResolver,
    collect_interceptors,
    interceptor,
)

__all__ = [
    # errors
    "DuplicateInterceptorIdError",
    "HandlerFailureError",
    "InterceptorCancelledError",
    "InterceptorException",
    "MissingRequiredParameterError",
    "MutationStepError",
    "ParameterBindingError",
    "ResultKindMismatchError",
    "SerializationError",
    "UnknownInterceptorIdError",
    # wire types
    "ExecuteChainRequestParams",
    "ExecuteChainResult",
    "InterceptorPhase",
    "InterceptorType",
    "InvokeInterceptorRequestParams",
    "InvokeInterceptorResult",
    "ValidationResult",
    "ValidationSeverity",
    # engine
    "CancellationToken",
    "Findings",
    "FromKeyedServices",
    "FromPayload",
    "FromServices",
    "InterceptorRegistry",
    "InterceptorServer",
    "MetadataOnly",
    "ModifiedPayload",
    "ProgressReporter",
    "ScopedServiceResolver",
    "ServerInterceptor",
    "ServerSession",
    "ServiceResolver",
    "collect_interceptors",
    "interceptor",
]
