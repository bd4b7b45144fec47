"""Error codes and mapping helpers for the interceptor protocol."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, TYPE_CHECKING

from aduib_intercept.exceptions import (
    DuplicateInterceptorIdError,
    HandlerFailureError,
    InterceptorCancelledError,
    InterceptorException,
    InternalError,
    InvalidCursorError,
    InvalidParamsError,
    MethodNotFoundError,
    MissingRequiredParameterError,
    MutationStepError,
    ParameterBindingError,
    ResultKindMismatchError,
    SerializationError,
    UnknownInterceptorIdError,
)

if TYPE_CHECKING:
    from aduib_intercept.protocol.types import RpcError


class ErrorCode(IntEnum):
    """Standard interceptor protocol error codes."""

    # protocol errors
    SERIALIZATION_ERROR = 1003

    # client errors
    INVALID_PARAMS = 2001
    MISSING_REQUIRED_PARAMETER = 2002
    PARAMETER_BINDING_FAILURE = 2003
    INVALID_CURSOR = 2005

    # resource errors
    METHOD_NOT_FOUND = 4001
    UNKNOWN_INTERCEPTOR_ID = 4003
    DUPLICATE_ID = 4010

    # server errors
    INTERNAL_ERROR = 5000
    CANCELLED = 5004

    # interceptor execution errors
    HANDLER_FAILURE = 5100
    RESULT_KIND_MISMATCH = 5101
    MUTATION_STEP_FAILED = 5102


ERROR_CODE_NAMES: dict[int, str] = {member.value: member.name for member in ErrorCode}


_EXCEPTION_BY_CODE: dict[int, type[InterceptorException]] = {
    ErrorCode.SERIALIZATION_ERROR: SerializationError,
    ErrorCode.INVALID_PARAMS: InvalidParamsError,
    ErrorCode.MISSING_REQUIRED_PARAMETER: MissingRequiredParameterError,
    ErrorCode.PARAMETER_BINDING_FAILURE: ParameterBindingError,
    ErrorCode.INVALID_CURSOR: InvalidCursorError,
    ErrorCode.METHOD_NOT_FOUND: MethodNotFoundError,
    ErrorCode.UNKNOWN_INTERCEPTOR_ID: UnknownInterceptorIdError,
    ErrorCode.DUPLICATE_ID: DuplicateInterceptorIdError,
    ErrorCode.INTERNAL_ERROR: InternalError,
    ErrorCode.CANCELLED: InterceptorCancelledError,
    ErrorCode.HANDLER_FAILURE: HandlerFailureError,
    ErrorCode.RESULT_KIND_MISMATCH: ResultKindMismatchError,
    ErrorCode.MUTATION_STEP_FAILED: MutationStepError,
}

# JSON-RPC 2.0 reserved codes used by the HTTP adapter.
JSONRPC_PARSE_ERROR = -32700
JSONRPC_INVALID_REQUEST = -32600


def error_code_to_http_status(code: int) -> int:
    """Return the HTTP status code corresponding to an error code.

    - 1xxx/2xxx (protocol and client errors) -> 400
    - 4001, 4003 (not found) -> 404
    - 4010 (duplicate) -> 409
    - 5004 (cancelled) -> 499
    - everything else -> 500
    """

    if 1000 <= code < 3000:
        return 400
    if code in (ErrorCode.METHOD_NOT_FOUND, ErrorCode.UNKNOWN_INTERCEPTOR_ID):
        return 404
    if code == ErrorCode.DUPLICATE_ID:
        return 409
    if code == ErrorCode.CANCELLED:
        return 499
    return 500


def exception_from_code(code: int, message: str | None = None, data: Any = None) -> InterceptorException:
    """Create a concrete exception instance from a standardized code."""

    exc_cls = _EXCEPTION_BY_CODE.get(code)
    if exc_cls is None:
        return InterceptorException(code=code, message=message or "Interceptor error", data=data)
    if message is None:
        return exc_cls(data=data)
    return exc_cls(message=message, data=data)


_STANDARD_EXCEPTION_MAPPING: dict[type[Exception], int] = {
    ValueError: ErrorCode.INVALID_PARAMS,
    KeyError: ErrorCode.INVALID_PARAMS,
    TypeError: ErrorCode.INVALID_PARAMS,
    LookupError: ErrorCode.UNKNOWN_INTERCEPTOR_ID,
    NotImplementedError: ErrorCode.METHOD_NOT_FOUND,
    Exception: ErrorCode.INTERNAL_ERROR,
}


def exception_to_error_code(exc: BaseException) -> int:
    """Map an exception to its error code.

    Engine exceptions keep their own code; standard exceptions are mapped by
    walking the MRO against the standard mapping table.
    """

    if isinstance(exc, InterceptorException):
        return int(exc.code)
    for cls in type(exc).__mro__:
        if cls in _STANDARD_EXCEPTION_MAPPING:
            return int(_STANDARD_EXCEPTION_MAPPING[cls])
    return int(ErrorCode.INTERNAL_ERROR)


def exception_to_rpc_error(exc: BaseException) -> "RpcError":
    """Convert an arbitrary exception to a wire RpcError.

    The error data always carries a human-readable cause, and the failing
    interceptor id when one is known.
    """

    from aduib_intercept.protocol.types import RpcError

    code = exception_to_error_code(exc)
    if isinstance(exc, InterceptorException):
        shape = exc.to_error_dict()
        message = shape["message"]
        data = shape["data"] or {}
    else:
        message = str(exc) or type(exc).__name__
        data = {"reason": f"{type(exc).__name__}: {exc}"}
    return RpcError(
        code=code,
        name=ERROR_CODE_NAMES.get(code, "UNKNOWN"),
        message=message,
        data=data or None,
    )
