"""Decorator-based collection of interceptors from modules, classes and instances.

Example::

    class Audit:
        @interceptor(kind="Observability", events=["tools/call"])
        async def audit_async(self, request: InvokeInterceptorRequestParams) -> None:
            ...

    registry.register_all(collect_interceptors(Audit))
"""

from __future__ import annotations

import inspect
import types
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from aduib_intercept.protocol.types import InterceptorPhase, InterceptorType
from aduib_intercept.server.interceptor import ServerInterceptor, TargetFactory

F = TypeVar("F")

_OPTIONS_ATTR = "__aduib_interceptor__"


@dataclass(frozen=True)
class InterceptorOptions:
    kind: InterceptorType
    id: str | None = None
    name: str | None = None
    description: str | None = None
    priority: int = 0
    events: tuple[str, ...] = ()
    phases: tuple[InterceptorPhase, ...] = ()


def interceptor(
    *,
    kind: InterceptorType | str,
    id: str | None = None,
    name: str | None = None,
    description: str | None = None,
    priority: int = 0,
    events: Iterable[str] | None = None,
    phases: Iterable[InterceptorPhase | str] | None = None,
) -> Callable[[F], F]:
    """Mark a function or method as an interceptor; ``collect_interceptors`` picks it up."""
    options = InterceptorOptions(
        kind=InterceptorType(kind),
        id=id,
        name=name,
        description=description,
        priority=priority,
        events=tuple(events or ()),
        phases=tuple(InterceptorPhase(p) for p in phases or ()),
    )

    def decorator(fn: F) -> F:
        target = fn.__func__ if isinstance(fn, (staticmethod, classmethod)) else fn
        setattr(target, _OPTIONS_ATTR, options)
        return fn

    return decorator


def get_options(obj: Any) -> InterceptorOptions | None:
    if isinstance(obj, (staticmethod, classmethod)):
        obj = obj.__func__
    options = getattr(obj, _OPTIONS_ATTR, None)
    return options if isinstance(options, InterceptorOptions) else None


def collect_interceptors(source: Any, target_factory: TargetFactory | None = None) -> list[ServerInterceptor]:
    """Build interceptors from every decorated callable found on ``source``.

    ``source`` may be a module, a class or an instance. For a class, plain
    methods get a fresh instance per call from ``target_factory`` (the class's
    no-argument constructor by default); static and class methods are called
    directly. Results are ordered by attribute name.
    """
    if isinstance(source, types.ModuleType):
        return _collect_from_module(source)
    if inspect.isclass(source):
        return _collect_from_class(source, target_factory)
    return _collect_from_instance(source)


def _build(fn: Callable[..., Any], options: InterceptorOptions, target_factory: TargetFactory | None = None) -> ServerInterceptor:
    return ServerInterceptor.from_function(
        fn,
        kind=options.kind,
        id=options.id,
        name=options.name,
        description=options.description,
        priority=options.priority,
        events=options.events,
        phases=options.phases,
        target_factory=target_factory,
    )


def _collect_from_module(module: types.ModuleType) -> list[ServerInterceptor]:
    collected = []
    for attr_name in sorted(vars(module)):
        value = vars(module)[attr_name]
        options = get_options(value)
        if options is not None and callable(value):
            collected.append(_build(value, options))
    return collected


def _collect_from_class(cls: type, target_factory: TargetFactory | None) -> list[ServerInterceptor]:
    factory = target_factory or (lambda _context: cls())
    collected = []
    for attr_name in sorted(dir(cls)):
        raw = inspect.getattr_static(cls, attr_name)
        options = get_options(raw)
        if options is None:
            continue
        if isinstance(raw, staticmethod):
            collected.append(_build(raw.__func__, options))
        elif isinstance(raw, classmethod):
            collected.append(_build(getattr(cls, attr_name), options))
        elif inspect.isfunction(raw):
            collected.append(_build(raw, options, target_factory=factory))
    return collected


def _collect_from_instance(instance: Any) -> list[ServerInterceptor]:
    collected = []
    cls = type(instance)
    for attr_name in sorted(dir(cls)):
        raw = inspect.getattr_static(cls, attr_name)
        options = get_options(raw)
        if options is None:
            continue
        if isinstance(raw, staticmethod):
            collected.append(_build(raw.__func__, options))
        elif isinstance(raw, classmethod) or inspect.isfunction(raw):
            collected.append(_build(getattr(instance, attr_name), options))
    return collected
