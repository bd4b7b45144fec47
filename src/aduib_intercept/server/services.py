from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ServiceResolver(Protocol):
    """Host-supplied lookup for interceptor dependencies.

    ``resolve`` and ``resolve_keyed`` return ``(value, found)`` so that a
    registered ``None`` can be told apart from a missing service.
    """

    def can_resolve(self, service_type: type) -> bool: ...

    def resolve(self, service_type: type) -> tuple[Any, bool]: ...

    def resolve_keyed(self, service_type: type, key: Any) -> tuple[Any, bool]: ...


class ScopedServiceResolver:
    """In-memory service resolver with optional parent inheritance.

    Args:
        services: Services keyed by type.
        keyed_services: Services keyed by ``(type, key)``.
        parent: Optional parent scope consulted when a lookup misses.
    """

    def __init__(
        self,
        services: dict[type, Any] | None = None,
        keyed_services: dict[tuple[type, Any], Any] | None = None,
        parent: ScopedServiceResolver | None = None,
    ) -> None:
        self.services = services or {}
        self.keyed_services = keyed_services or {}
        self._parent = parent

    def child(self) -> ScopedServiceResolver:
        """Create a child scope whose registrations shadow this one's."""
        return ScopedServiceResolver(parent=self)

    def register(self, service_type: type, instance: Any) -> None:
        """Register an instance for ``service_type`` in the current scope."""
        if service_type in self.services:
            raise ValueError(f"Service '{_type_name(service_type)}' is already registered in the current scope.")
        self.services[service_type] = instance

    def register_keyed(self, service_type: type, key: Any, instance: Any) -> None:
        """Register an instance for ``service_type`` under ``key`` in the current scope."""
        if (service_type, key) in self.keyed_services:
            raise ValueError(
                f"Service '{_type_name(service_type)}' with key {key!r} is already registered in the current scope."
            )
        self.keyed_services[(service_type, key)] = instance

    def can_resolve(self, service_type: type) -> bool:
        if service_type in self.services:
            return True
        if self._parent is None:
            return False
        return self._parent.can_resolve(service_type)

    def resolve(self, service_type: type) -> tuple[Any, bool]:
        if service_type in self.services:
            return self.services[service_type], True
        if self._parent is None:
            return None, False
        return self._parent.resolve(service_type)

    def resolve_keyed(self, service_type: type, key: Any) -> tuple[Any, bool]:
        if (service_type, key) in self.keyed_services:
            return self.keyed_services[(service_type, key)], True
        if self._parent is None:
            return None, False
        return self._parent.resolve_keyed(service_type, key)


def _type_name(service_type: Any) -> str:
    return getattr(service_type, "__qualname__", None) or repr(service_type)
