from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InterceptorException(Exception):
    """Base class for interceptor engine exceptions with a canonical error shape."""

    code: int
    message: str
    data: Any | None = None
    cause: Exception | None = None
    interceptor_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", (self.message,))
        if self.cause is not None:
            object.__setattr__(self, "__cause__", self.cause)
            object.__setattr__(self, "__suppress_context__", True)

    def to_error_dict(self) -> dict[str, Any]:
        """Return a dict compatible with RpcError."""
        data: dict[str, Any] = {}
        if isinstance(self.data, dict):
            data.update(self.data)
        elif self.data is not None:
            data["detail"] = self.data
        if self.interceptor_id is not None:
            data.setdefault("interceptorId", self.interceptor_id)
        if self.cause is not None:
            data.setdefault("reason", f"{type(self.cause).__name__}: {self.cause}")
        return {"code": self.code, "message": self.message, "data": data or None}


@dataclass(frozen=True)
class SerializationError(InterceptorException):
    """Raised when a payload value cannot be matched to the expected shape."""

    code: int = 1003
    message: str = "Serialization error"


@dataclass(frozen=True)
class InvalidParamsError(InterceptorException):
    """Raised when protocol request parameters are invalid."""

    code: int = 2001
    message: str = "Invalid params"


@dataclass(frozen=True)
class MissingRequiredParameterError(InterceptorException):
    """Raised when a required interceptor argument is absent from every source."""

    code: int = 2002
    message: str = "Missing required parameter"
    parameter: str | None = None


@dataclass(frozen=True)
class ParameterBindingError(InterceptorException):
    """Raised when the binder cannot satisfy an interceptor argument."""

    code: int = 2003
    message: str = "Parameter binding failure"
    parameter: str | None = None


@dataclass(frozen=True)
class InvalidCursorError(InterceptorException):
    """Raised when a pagination cursor cannot be decoded."""

    code: int = 2005
    message: str = "Invalid cursor"


@dataclass(frozen=True)
class UnknownInterceptorIdError(InterceptorException):
    """Raised when a call references an interceptor id that is not registered."""

    code: int = 4003
    message: str = "Unknown interceptor id"


@dataclass(frozen=True)
class MethodNotFoundError(InterceptorException):
    """Raised when the protocol method name is not served."""

    code: int = 4001
    message: str = "Method not found"


@dataclass(frozen=True)
class DuplicateInterceptorIdError(InterceptorException):
    """Raised when registering an interceptor whose id already exists."""

    code: int = 4010
    message: str = "Duplicate interceptor id"


@dataclass(frozen=True)
class InternalError(InterceptorException):
    """Raised for unexpected engine failures."""

    code: int = 5000
    message: str = "Internal error"


@dataclass(frozen=True)
class InterceptorCancelledError(InterceptorException):
    """Raised when a chain or invocation observes its cancellation signal."""

    code: int = 5004
    message: str = "Interceptor call cancelled"


@dataclass(frozen=True)
class HandlerFailureError(InterceptorException):
    """Raised when interceptor logic fails during execution."""

    code: int = 5100
    message: str = "Interceptor handler failed"


@dataclass(frozen=True)
class ResultKindMismatchError(HandlerFailureError):
    """Raised when a tagged result does not match the interceptor's declared kind."""

    code: int = 5101
    message: str = "Interceptor result does not match its kind"


@dataclass(frozen=True)
class MutationStepError(InterceptorException):
    """Raised when a mutation step aborts a chain.

    ``partial_result`` holds the aggregated chain outcome computed despite the
    failure: the last good payload, every validation finding and the metadata
    gathered so far.
    """

    code: int = 5102
    message: str = "Mutation step failed"
    partial_result: Any | None = None

    def to_error_dict(self) -> dict[str, Any]:
        error = super().to_error_dict()
        if self.partial_result is not None:
            data = dict(error["data"] or {})
            to_wire = getattr(self.partial_result, "to_wire", None)
            data["partialResult"] = to_wire() if callable(to_wire) else self.partial_result
            error["data"] = data
        return error
