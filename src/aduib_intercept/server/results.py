"""Tagged return values for interceptor handlers.

A handler may return one of these instead of a full
``InvokeInterceptorResult`` to state explicitly what it produced. The
invoker checks the tag against the interceptor's declared kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from aduib_intercept.protocol.types import ValidationResult


@dataclass(frozen=True)
class ModifiedPayload:
    """Replacement payload produced by a mutation interceptor."""

    payload: Any
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class Findings:
    """Validation findings produced by a validation interceptor."""

    results: list[ValidationResult] = field(default_factory=list)
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class MetadataOnly:
    """Metadata with no payload change and no findings; valid for any kind."""

    metadata: dict[str, Any] = field(default_factory=dict)
