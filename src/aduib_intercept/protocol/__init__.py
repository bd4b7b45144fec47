from aduib_intercept.protocol.errors import (
    ERROR_CODE_NAMES,
    ErrorCode,
    error_code_to_http_status,
    exception_from_code,
    exception_to_error_code,
    exception_to_rpc_error,
)
from aduib_intercept.protocol.methods import InterceptorMethod, InterceptorNotification
from aduib_intercept.protocol.types import (
    ExecuteChainRequestParams,
    ExecuteChainResult,
    Interceptor,
    InterceptorListChangedNotificationParams,
    InterceptorPhase,
    InterceptorsCapability,
    InterceptorType,
    InvokeInterceptorRequestParams,
    InvokeInterceptorResult,
    ListInterceptorsRequestParams,
    ListInterceptorsResult,
    ProgressMeta,
    ProgressNotificationParams,
    RpcError,
    ValidationResult,
    ValidationSeverity,
)

__all__ = [
    "ERROR_CODE_NAMES",
    "ErrorCode",
    "error_code_to_http_status",
    "exception_from_code",
    "exception_to_error_code",
    "exception_to_rpc_error",
    "InterceptorMethod",
    "InterceptorNotification",
    "ExecuteChainRequestParams",
    "ExecuteChainResult",
    "Interceptor",
    "InterceptorListChangedNotificationParams",
    "InterceptorPhase",
    "InterceptorsCapability",
    "InterceptorType",
    "InvokeInterceptorRequestParams",
    "InvokeInterceptorResult",
    "ListInterceptorsRequestParams",
    "ListInterceptorsResult",
    "ProgressMeta",
    "ProgressNotificationParams",
    "RpcError",
    "ValidationResult",
    "ValidationSeverity",
]
