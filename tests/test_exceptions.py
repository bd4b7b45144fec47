from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

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
from aduib_intercept.protocol.errors import (
    ERROR_CODE_NAMES,
    ErrorCode,
    error_code_to_http_status,
    exception_from_code,
    exception_to_error_code,
    exception_to_rpc_error,
)
from aduib_intercept.protocol.types import ExecuteChainResult


EXCEPTION_DEFAULTS = [
    (SerializationError, 1003, "Serialization error"),
    (InvalidParamsError, 2001, "Invalid params"),
    (MissingRequiredParameterError, 2002, "Missing required parameter"),
    (ParameterBindingError, 2003, "Parameter binding failure"),
    (InvalidCursorError, 2005, "Invalid cursor"),
    (MethodNotFoundError, 4001, "Method not found"),
    (UnknownInterceptorIdError, 4003, "Unknown interceptor id"),
    (DuplicateInterceptorIdError, 4010, "Duplicate interceptor id"),
    (InternalError, 5000, "Internal error"),
    (InterceptorCancelledError, 5004, "Interceptor call cancelled"),
    (HandlerFailureError, 5100, "Interceptor handler failed"),
    (ResultKindMismatchError, 5101, "Interceptor result does not match its kind"),
    (MutationStepError, 5102, "Mutation step failed"),
]


@pytest.mark.parametrize("exc_class, expected_code, expected_message", EXCEPTION_DEFAULTS)
def test_exception_classes_have_default_code_and_message(exc_class, expected_code, expected_message):
    exc = exc_class()
    assert exc.code == expected_code
    assert exc.message == expected_message
    assert ERROR_CODE_NAMES[expected_code] == ErrorCode(expected_code).name


@pytest.mark.parametrize("exc_class, expected_code, expected_message", EXCEPTION_DEFAULTS)
def test_exception_from_code_round_trips_class(exc_class, expected_code, expected_message):
    exc = exception_from_code(expected_code, message="custom")
    assert type(exc) is exc_class
    assert exc.message == "custom"


def test_exception_from_unknown_code_returns_base_exception():
    exc = exception_from_code(9999)
    assert type(exc) is InterceptorException
    assert exc.code == 9999


def test_exception_is_immutable():
    exc = UnknownInterceptorIdError(interceptor_id="x")
    with pytest.raises(FrozenInstanceError):
        exc.message = "mutated"


def test_exception_with_cause_sets_dunder_cause():
    cause = ValueError("root cause")
    exc = HandlerFailureError(message="wrapped", cause=cause, interceptor_id="redact")
    assert exc.__cause__ is cause
    assert exc.__suppress_context__ is True
    assert exc.args == ("wrapped",)


def test_to_error_dict_carries_interceptor_id_and_reason():
    exc = HandlerFailureError(message="boom", cause=RuntimeError("disk full"), interceptor_id="audit")
    assert exc.to_error_dict() == {
        "code": 5100,
        "message": "boom",
        "data": {"interceptorId": "audit", "reason": "RuntimeError: disk full"},
    }


def test_to_error_dict_without_extras_has_no_data():
    assert InternalError().to_error_dict() == {"code": 5000, "message": "Internal error", "data": None}


def test_mutation_step_error_includes_partial_result():
    partial = ExecuteChainResult(modified_payload="x-B", all_validation_results=[])
    exc = MutationStepError(interceptor_id="A", partial_result=partial)
    data = exc.to_error_dict()["data"]
    assert data["interceptorId"] == "A"
    assert data["partialResult"] == {"modifiedPayload": "x-B", "allValidationResults": []}


def test_result_kind_mismatch_is_handler_failure():
    assert isinstance(ResultKindMismatchError(), HandlerFailureError)


@pytest.mark.parametrize(
    "code, status",
    [
        (ErrorCode.SERIALIZATION_ERROR, 400),
        (ErrorCode.MISSING_REQUIRED_PARAMETER, 400),
        (ErrorCode.UNKNOWN_INTERCEPTOR_ID, 404),
        (ErrorCode.METHOD_NOT_FOUND, 404),
        (ErrorCode.DUPLICATE_ID, 409),
        (ErrorCode.CANCELLED, 499),
        (ErrorCode.HANDLER_FAILURE, 500),
    ],
)
def test_error_code_to_http_status(code, status):
    assert error_code_to_http_status(int(code)) == status


@pytest.mark.parametrize(
    "exc, code",
    [
        (ValueError("bad"), ErrorCode.INVALID_PARAMS),
        (KeyError("k"), ErrorCode.INVALID_PARAMS),
        (NotImplementedError(), ErrorCode.METHOD_NOT_FOUND),
        (RuntimeError("x"), ErrorCode.INTERNAL_ERROR),
        (UnknownInterceptorIdError(), ErrorCode.UNKNOWN_INTERCEPTOR_ID),
    ],
)
def test_exception_to_error_code(exc, code):
    assert exception_to_error_code(exc) == int(code)


def test_exception_to_rpc_error_for_engine_exception():
    error = exception_to_rpc_error(UnknownInterceptorIdError(message="Unknown interceptor id 'ghost'", interceptor_id="ghost"))
    assert error.code == 4003
    assert error.name == "UNKNOWN_INTERCEPTOR_ID"
    assert error.data == {"interceptorId": "ghost"}


def test_exception_to_rpc_error_for_plain_exception():
    error = exception_to_rpc_error(RuntimeError("kaput"))
    assert error.code == 5000
    assert error.message == "kaput"
    assert error.data == {"reason": "RuntimeError: kaput"}
