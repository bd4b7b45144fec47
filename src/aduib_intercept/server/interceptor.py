from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Iterable
from typing import Any

from aduib_intercept.protocol.types import InterceptorPhase, InterceptorType
from aduib_intercept.server.binding import ParameterBinder
from aduib_intercept.server.context import RequestContext
from aduib_intercept.server.descriptor import InterceptorDescriptor

TargetFactory = Callable[[RequestContext], Any]

_ASYNC_SUFFIX = "_async"


class ServerInterceptor:
    """A registered interceptor: descriptor plus the callable that implements it.

    When ``target_factory`` is set, ``handler`` is an unbound method; a fresh
    target is built for every call and passed as its first argument, then
    disposed once the call finishes.

    Args:
        descriptor: Identity and execution metadata.
        handler: Sync or async callable implementing the interceptor.
        target_factory: Optional per-call instance factory for unbound methods.
    """

    def __init__(
        self,
        descriptor: InterceptorDescriptor,
        handler: Callable[..., Any],
        target_factory: TargetFactory | None = None,
    ) -> None:
        if not callable(handler):
            raise TypeError("interceptor handler must be callable")
        self.descriptor = descriptor
        self.handler = handler
        self.target_factory = target_factory
        skip: tuple[str, ...] = ()
        if target_factory is not None:
            first = next(iter(inspect.signature(handler).parameters), None)
            if first is None:
                raise TypeError(f"Interceptor '{descriptor.id}' needs a parameter for its target instance")
            skip = (first,)
        self.binder = ParameterBinder(handler, skip_names=skip)
        self.is_async = _is_async_callable(handler)

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def kind(self) -> InterceptorType:
        return self.descriptor.kind

    def __repr__(self) -> str:
        return f"ServerInterceptor(id={self.id!r}, kind={self.kind.value}, priority={self.descriptor.priority})"

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        *,
        kind: InterceptorType | str,
        id: str | None = None,
        name: str | None = None,
        description: str | None = None,
        priority: int = 0,
        events: Iterable[str] | None = None,
        phases: Iterable[InterceptorPhase | str] | None = None,
        target_factory: TargetFactory | None = None,
    ) -> ServerInterceptor:
        """Wrap a plain function (or bound method) as an interceptor.

        The id defaults to the function name without an ``_async`` suffix and
        the description to the function's docstring.
        """
        interceptor_id = id or derive_id(fn)
        descriptor = InterceptorDescriptor(
            id=interceptor_id,
            kind=InterceptorType(kind),
            name=name or interceptor_id,
            description=description if description is not None else inspect.getdoc(fn),
            priority=priority,
            applicable_events=frozenset(events or ()),
            applicable_phases=frozenset(InterceptorPhase(p) for p in phases or ()),
        )
        return cls(descriptor, fn, target_factory=target_factory)


def derive_id(fn: Callable[..., Any]) -> str:
    while isinstance(fn, functools.partial):
        fn = fn.func
    name = getattr(fn, "__name__", None) or type(fn).__name__
    if name.endswith(_ASYNC_SUFFIX) and len(name) > len(_ASYNC_SUFFIX):
        name = name[: -len(_ASYNC_SUFFIX)]
    return name


def _is_async_callable(obj: Any) -> bool:
    while isinstance(obj, functools.partial):
        obj = obj.func
    return inspect.iscoroutinefunction(obj) or (
        callable(obj) and inspect.iscoroutinefunction(getattr(obj, "__call__", None))
    )
