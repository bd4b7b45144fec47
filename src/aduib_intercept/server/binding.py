"""Per-argument binding for interceptor handlers.

A ``ParameterBinder`` is built once per handler. It inspects the signature
and records, for every parameter, where its value comes from. ``bind`` then
fills the arguments for one call from a ``RequestContext``:

1. well-known context values, selected by annotation;
2. services from the call's ``ServiceResolver`` (explicitly marked with
   ``FromServices`` / ``FromKeyedServices``, or any class the resolver says
   it can provide);
3. payload properties, matched by parameter name and validated with pydantic.
"""

from __future__ import annotations

import copy
import enum
import inspect
import json
import logging
import types
import typing
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Annotated, Any

from pydantic import TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError

from aduib_intercept.exceptions import (
    MissingRequiredParameterError,
    ParameterBindingError,
    SerializationError,
)
from aduib_intercept.protocol.types import InvokeInterceptorRequestParams
from aduib_intercept.server.context import (
    CancellationToken,
    ProgressReporter,
    RequestContext,
    ServerSession,
)
from aduib_intercept.server.services import ServiceResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FromServices:
    """Marks a parameter as resolved from the service resolver by type."""


@dataclass(frozen=True)
class FromKeyedServices:
    """Marks a parameter as a keyed service; the key defaults to the parameter name."""

    key: Any = None


@dataclass(frozen=True)
class FromPayload:
    """Binds the whole request payload to the parameter."""


class BindingSource(enum.Enum):
    CANCELLATION = "cancellation"
    RESOLVER = "resolver"
    SESSION = "session"
    PROGRESS = "progress"
    REQUEST = "request"
    CONTEXT = "context"
    SERVICE = "service"
    KEYED_SERVICE = "keyed_service"
    WHOLE_PAYLOAD = "whole_payload"
    PAYLOAD = "payload"


_WELL_KNOWN: tuple[tuple[type, BindingSource], ...] = (
    (CancellationToken, BindingSource.CANCELLATION),
    (ServerSession, BindingSource.SESSION),
    (ProgressReporter, BindingSource.PROGRESS),
    (InvokeInterceptorRequestParams, BindingSource.REQUEST),
    (RequestContext, BindingSource.CONTEXT),
)

_NO_JSON_PREPARSE = (str, bytes, Any)


@dataclass(frozen=True)
class ParameterPlan:
    """How a single parameter gets its value."""

    name: str
    source: BindingSource
    annotation: Any
    default: Any = inspect.Parameter.empty
    positional_only: bool = False
    service_key: Any = None
    adapter: TypeAdapter[Any] | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not inspect.Parameter.empty

    @property
    def resolver_candidate(self) -> bool:
        """Whether an unmarked parameter may still be satisfied by the resolver."""
        return self.source is BindingSource.PAYLOAD and self.annotation is not Any and inspect.isclass(self.annotation)


@dataclass
class BoundArguments:
    args: list[Any]
    kwargs: dict[str, Any]


class ParameterBinder:
    """Builds and applies the binding plan of one handler.

    Args:
        fn: The handler callable.
        skip_names: Parameters supplied by the caller (e.g. ``self`` of an unbound method).
    """

    def __init__(self, fn: Callable[..., Any], skip_names: Sequence[str] = ()) -> None:
        self.fn = fn
        self.plans = build_plans(fn, skip_names)

    def bind(self, context: RequestContext) -> BoundArguments:
        payload = copy.deepcopy(context.params.payload)
        bound = BoundArguments(args=[], kwargs={})
        for plan in self.plans:
            found, value = _bind_one(plan, context, payload)
            if not found:
                continue
            if plan.positional_only:
                bound.args.append(value)
            else:
                bound.kwargs[plan.name] = value
        return bound


def build_plans(fn: Callable[..., Any], skip_names: Sequence[str] = ()) -> list[ParameterPlan]:
    sig = inspect.signature(fn)
    hints = _type_hints(fn)
    plans: list[ParameterPlan] = []
    for param in sig.parameters.values():
        if param.name in skip_names:
            continue
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(param.name, param.annotation)
        if annotation is inspect.Parameter.empty:
            annotation = Any
        plans.append(_plan_parameter(param, annotation))
    return plans


def _type_hints(fn: Callable[..., Any]) -> dict[str, Any]:
    target = inspect.unwrap(fn)
    if not (inspect.isfunction(target) or inspect.ismethod(target)):
        target = getattr(target, "__call__", target)
    try:
        return typing.get_type_hints(target, include_extras=True)
    except (NameError, TypeError):
        logger.debug("Could not resolve type hints of %r; using raw annotations", fn)
        return {}


def _plan_parameter(param: inspect.Parameter, annotation: Any) -> ParameterPlan:
    base, marker = _split_annotation(annotation)
    common = {
        "name": param.name,
        "annotation": base,
        "default": param.default,
        "positional_only": param.kind is inspect.Parameter.POSITIONAL_ONLY,
    }
    if marker is None:
        source = _well_known_source(base)
        if source is not None:
            return ParameterPlan(source=source, **common)
    if isinstance(marker, FromServices):
        return ParameterPlan(source=BindingSource.SERVICE, **common)
    if isinstance(marker, FromKeyedServices):
        key = marker.key if marker.key is not None else param.name
        return ParameterPlan(source=BindingSource.KEYED_SERVICE, service_key=key, **common)
    source = BindingSource.WHOLE_PAYLOAD if isinstance(marker, FromPayload) else BindingSource.PAYLOAD
    target = base if marker is not None else annotation
    return ParameterPlan(source=source, adapter=_adapter_for(target), **common)


def _split_annotation(annotation: Any) -> tuple[Any, Any]:
    """Return ``(annotation_without_binding_markers, marker_or_None)``."""
    if typing.get_origin(annotation) is not Annotated:
        return annotation, None
    base, *extras = typing.get_args(annotation)
    marker = next((m for m in extras if isinstance(m, (FromServices, FromKeyedServices, FromPayload))), None)
    if marker is None:
        return annotation, None
    rest = [m for m in extras if m is not marker]
    if rest:
        return Annotated[(base, *rest)], marker
    return base, marker


def _well_known_source(annotation: Any) -> BindingSource | None:
    target = _unwrap_optional(annotation)
    if target is ServiceResolver:
        return BindingSource.RESOLVER
    if target is Any or not inspect.isclass(target):
        return None
    for known, source in _WELL_KNOWN:
        if issubclass(target, known):
            return source
    return None


def _unwrap_optional(annotation: Any) -> Any:
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _adapter_for(annotation: Any) -> TypeAdapter[Any] | None:
    if annotation is Any or isinstance(annotation, str):
        return None
    try:
        return TypeAdapter(annotation)
    except (PydanticSchemaGenerationError, NameError):
        return None


def _bind_one(plan: ParameterPlan, context: RequestContext, payload: Any) -> tuple[bool, Any]:
    source = plan.source
    if source is BindingSource.CANCELLATION:
        return True, context.cancellation
    if source is BindingSource.SESSION:
        return True, context.session
    if source is BindingSource.PROGRESS:
        return True, context.progress
    if source is BindingSource.REQUEST:
        return True, context.params
    if source is BindingSource.CONTEXT:
        return True, context
    if source is BindingSource.RESOLVER:
        if context.services is None:
            return _missing_service(plan, context, "no service resolver is available")
        return True, context.services
    if source is BindingSource.SERVICE:
        return _bind_service(plan, context)
    if source is BindingSource.KEYED_SERVICE:
        return _bind_keyed_service(plan, context)
    if source is BindingSource.WHOLE_PAYLOAD:
        return True, _convert(plan, payload, context)

    resolver = context.services
    if plan.resolver_candidate and resolver is not None and resolver.can_resolve(plan.annotation):
        return _bind_service(plan, context)
    if isinstance(payload, Mapping) and plan.name in payload:
        return True, _convert(plan, payload[plan.name], context)
    if plan.has_default:
        return False, None
    raise MissingRequiredParameterError(
        message=f"Missing required parameter '{plan.name}'",
        interceptor_id=context.interceptor_id,
        parameter=plan.name,
        data={"parameter": plan.name},
    )


def _bind_service(plan: ParameterPlan, context: RequestContext) -> tuple[bool, Any]:
    resolver = context.services
    if resolver is None:
        return _missing_service(plan, context, "no service resolver is available")
    value, found = resolver.resolve(_unwrap_optional(plan.annotation))
    if found:
        return True, value
    return _missing_service(plan, context, f"service {_type_label(plan.annotation)} is not registered")


def _bind_keyed_service(plan: ParameterPlan, context: RequestContext) -> tuple[bool, Any]:
    resolver = context.services
    if resolver is None:
        return _missing_service(plan, context, "no service resolver is available")
    value, found = resolver.resolve_keyed(_unwrap_optional(plan.annotation), plan.service_key)
    if found:
        return True, value
    return _missing_service(
        plan, context, f"service {_type_label(plan.annotation)} with key {plan.service_key!r} is not registered"
    )


def _missing_service(plan: ParameterPlan, context: RequestContext, reason: str) -> tuple[bool, Any]:
    if plan.has_default:
        return False, None
    raise ParameterBindingError(
        message=f"Cannot bind parameter '{plan.name}': {reason}",
        interceptor_id=context.interceptor_id,
        parameter=plan.name,
        data={"parameter": plan.name},
    )


def _convert(plan: ParameterPlan, value: Any, context: RequestContext) -> Any:
    if plan.adapter is None:
        if inspect.isclass(plan.annotation) and plan.annotation is not Any and not isinstance(value, plan.annotation):
            raise SerializationError(
                message=f"Parameter '{plan.name}' expects {_type_label(plan.annotation)}",
                interceptor_id=context.interceptor_id,
                data={"parameter": plan.name},
            )
        return value
    try:
        return plan.adapter.validate_python(_pre_parse_json(plan.annotation, value))
    except ValidationError as exc:
        raise SerializationError(
            message=f"Parameter '{plan.name}' does not match {_type_label(plan.annotation)}",
            interceptor_id=context.interceptor_id,
            data={"parameter": plan.name, "errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            cause=exc,
        ) from exc


def _pre_parse_json(annotation: Any, value: Any) -> Any:
    """Parse JSON held in a string when the target is not itself a string.

    Scalars are left alone so that ``'"hello"'`` does not silently lose its quotes.
    """
    if not isinstance(value, str) or _unwrap_optional(annotation) in _NO_JSON_PREPARSE:
        return value
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return value
    if isinstance(parsed, str | int | float):
        return value
    return parsed


def _type_label(annotation: Any) -> str:
    return getattr(annotation, "__qualname__", None) or repr(annotation)
