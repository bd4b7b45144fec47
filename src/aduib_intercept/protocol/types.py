"""Wire entities for the interceptor protocol.

Field names are snake_case in Python and camelCase on the wire; every model
accepts both spellings on input and dumps aliases via ``to_wire()``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CaseInsensitiveEnum(StrEnum):

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if member.value.lower() == key or member.name.lower() == key:
                    return member
        return None


class InterceptorPhase(_CaseInsensitiveEnum):
    """Whether an interceptor applies to an incoming request or an outgoing response."""

    REQUEST = "Request"
    RESPONSE = "Response"


class InterceptorType(_CaseInsensitiveEnum):
    """Execution model of an interceptor."""

    VALIDATION = "Validation"
    MUTATION = "Mutation"
    OBSERVABILITY = "Observability"


class ValidationSeverity(_CaseInsensitiveEnum):
    """Severity of a validation finding."""

    INFO = "Info"
    WARNING = "Warning"
    ERROR = "Error"


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    def to_wire(self) -> dict[str, Any]:
        """Dump using wire aliases, dropping unset optional fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ValidationResult(WireModel):
    """A single validation finding.

    Attributes:
        severity: Info, Warning or Error.
        message: Human-readable description.
        path: Optional path into the payload, e.g. ``$.payload.email``.
    """

    severity: ValidationSeverity
    message: str
    path: str | None = None


class Interceptor(WireModel):
    """Wire description of a registered interceptor."""

    id: str
    name: str
    description: str | None = None
    type: InterceptorType
    priority: int = 0
    applicable_events: list[str] | None = Field(default=None, alias="applicableEvents")
    phases: list[InterceptorPhase] | None = None


class ProgressMeta(WireModel):
    progress_token: str | int | None = Field(default=None, alias="progressToken")


class InvokeInterceptorRequestParams(WireModel):
    """Parameters of ``interceptor/invoke``."""

    interceptor_id: str = Field(alias="interceptorId")
    event: str
    phase: InterceptorPhase
    payload: Any | None = None
    meta: ProgressMeta | None = Field(default=None, alias="_meta")

    @property
    def progress_token(self) -> str | int | None:
        return self.meta.progress_token if self.meta is not None else None


class InvokeInterceptorResult(WireModel):
    """Result of ``interceptor/invoke``."""

    modified_payload: Any | None = Field(default=None, alias="modifiedPayload")
    validation_results: list[ValidationResult] | None = Field(default=None, alias="validationResults")
    metadata: dict[str, Any] | None = None

    @property
    def findings(self) -> list[ValidationResult]:
        return list(self.validation_results or [])

    def is_empty(self) -> bool:
        return self.modified_payload is None and not self.validation_results and not self.metadata


class ExecuteChainRequestParams(WireModel):
    """Parameters of ``interceptor/executeChain``."""

    interceptor_ids: list[str] = Field(alias="interceptorIds")
    event: str
    phase: InterceptorPhase
    payload: Any | None = None
    meta: ProgressMeta | None = Field(default=None, alias="_meta")

    @property
    def progress_token(self) -> str | int | None:
        return self.meta.progress_token if self.meta is not None else None


class ExecuteChainResult(WireModel):
    """Result of ``interceptor/executeChain``."""

    modified_payload: Any | None = Field(default=None, alias="modifiedPayload")
    all_validation_results: list[ValidationResult] | None = Field(default=None, alias="allValidationResults")
    metadata: dict[str, Any] | None = None

    @property
    def findings(self) -> list[ValidationResult]:
        return list(self.all_validation_results or [])


class ListInterceptorsRequestParams(WireModel):
    cursor: str | None = None


class ListInterceptorsResult(WireModel):
    interceptors: list[Interceptor]
    next_cursor: str | None = Field(default=None, alias="nextCursor")


class InterceptorListChangedNotificationParams(WireModel):
    """Carries no fields; the notification alone signals a changed set."""


class InterceptorsCapability(WireModel):
    list_changed: bool | None = Field(default=None, alias="listChanged")


class ProgressNotificationParams(WireModel):
    progress_token: str | int = Field(alias="progressToken")
    progress: float
    total: float | None = None
    message: str | None = None


class RpcError(WireModel):
    """Canonical error payload.

    Attributes:
        code: Numeric error code (see ErrorCode).
        name: Error name such as "UNKNOWN_INTERCEPTOR_ID".
        message: Human-readable message.
        data: Optional structured detail (interceptor id, reason, ...).
    """

    code: int
    name: str = "UNKNOWN"
    message: str
    data: dict[str, Any] | None = None
