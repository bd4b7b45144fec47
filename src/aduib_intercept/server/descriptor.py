from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from aduib_intercept.protocol.types import Interceptor, InterceptorPhase, InterceptorType


def _phase_set(phases: Iterable[InterceptorPhase | str] | None) -> frozenset[InterceptorPhase]:
    if not phases:
        return frozenset()
    return frozenset(InterceptorPhase(p) for p in phases)


@dataclass(frozen=True, slots=True)
class InterceptorDescriptor:
    """Identity and execution metadata of one interceptor.

    Contract:
    - id: the only key, unique within a registry.
    - priority: lower runs earlier; ties are broken by id.
    - applicable_events / applicable_phases: empty means "all".
    """

    id: str
    kind: InterceptorType
    name: str = ""
    description: str | None = None
    priority: int = 0
    applicable_events: frozenset[str] = field(default_factory=frozenset)
    applicable_phases: frozenset[InterceptorPhase] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("interceptor id must not be empty")
        object.__setattr__(self, "kind", InterceptorType(self.kind))
        if not self.name:
            object.__setattr__(self, "name", self.id)
        object.__setattr__(self, "applicable_events", frozenset(self.applicable_events or ()))
        object.__setattr__(self, "applicable_phases", _phase_set(self.applicable_phases))

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.priority, self.id)

    def applies_to_phase(self, phase: InterceptorPhase) -> bool:
        return not self.applicable_phases or phase in self.applicable_phases

    def applies_to_event(self, event: str) -> bool:
        return not self.applicable_events or event in self.applicable_events

    def matches(self, event: str, phase: InterceptorPhase) -> bool:
        return self.applies_to_event(event) and self.applies_to_phase(phase)

    def to_protocol(self) -> Interceptor:
        return Interceptor(
            id=self.id,
            name=self.name,
            description=self.description,
            type=self.kind,
            priority=self.priority,
            applicable_events=sorted(self.applicable_events) or None,
            phases=sorted(self.applicable_phases, key=lambda p: list(InterceptorPhase).index(p)) or None,
        )

    @classmethod
    def from_protocol(cls, interceptor: Interceptor) -> "InterceptorDescriptor":
        return cls(
            id=interceptor.id,
            kind=interceptor.type,
            name=interceptor.name,
            description=interceptor.description,
            priority=interceptor.priority,
            applicable_events=frozenset(interceptor.applicable_events or ()),
            applicable_phases=_phase_set(interceptor.phases),
        )


def execution_order(descriptors: Iterable[InterceptorDescriptor]) -> list[InterceptorDescriptor]:
    """Sort descriptors by (priority asc, id asc)."""
    return sorted(descriptors, key=lambda d: d.sort_key)
