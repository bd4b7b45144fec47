from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass

__all__ = [
    "MetricLabels",
    "Metric",
    "Counter",
    "Histogram",
    "Gauge",
    "InterceptorMetrics",
]

DEFAULT_MAX_SAMPLES = 1024


@dataclass(frozen=True)
class MetricLabels:
    interceptor: str = ""
    kind: str = ""
    phase: str = ""
    status: str = ""

    def key(self) -> tuple[str, str, str, str]:
        return (self.interceptor, self.kind, self.phase, self.status)


class Metric(ABC):

    @abstractmethod
    async def record(self, value: float, labels: MetricLabels) -> None:
        raise NotImplementedError


class Counter(Metric):

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self._values: dict[tuple[str, str, str, str], float] = {}
        self._lock = threading.Lock()

    async def record(self, value: float, labels: MetricLabels) -> None:
        key = labels.key()
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    async def inc(self, labels: MetricLabels) -> None:
        await self.record(1.0, labels)

    def get(self) -> dict[tuple[str, str, str, str], float]:
        with self._lock:
            return dict(self._values)

    def total(self, **match: str) -> float:
        """Sum every series whose labels equal the given values."""
        fields = ("interceptor", "kind", "phase", "status")
        with self._lock:
            items = list(self._values.items())
        total = 0.0
        for key, value in items:
            labels = dict(zip(fields, key))
            if all(labels.get(name) == wanted for name, wanted in match.items()):
                total += value
        return total


class Histogram(Metric):
    """Sliding-window histogram; percentiles cover the latest ``max_samples`` values per series."""

    def __init__(self, name: str, description: str, max_samples: int = DEFAULT_MAX_SAMPLES) -> None:
        self.name = name
        self.description = description
        self.max_samples = max_samples
        self._observations: dict[tuple[str, str, str, str], deque[float]] = {}
        self._counts: dict[tuple[str, str, str, str], int] = {}
        self._lock = threading.Lock()

    async def record(self, value: float, labels: MetricLabels) -> None:
        key = labels.key()
        with self._lock:
            window = self._observations.get(key)
            if window is None:
                window = self._observations[key] = deque(maxlen=self.max_samples)
            window.append(value)
            self._counts[key] = self._counts.get(key, 0) + 1

    async def get_percentile(self, labels: MetricLabels, percentile: float) -> float:
        with self._lock:
            observations = list(self._observations.get(labels.key(), ()))
        if not observations:
            return 0.0
        observations.sort()
        percentile = min(max(percentile, 0.0), 100.0)
        index = min(int(len(observations) * percentile / 100), len(observations) - 1)
        return observations[index]

    def count(self, labels: MetricLabels) -> int:
        """Observations recorded for the series, including ones outside the window."""
        with self._lock:
            return self._counts.get(labels.key(), 0)

    def retained(self, labels: MetricLabels) -> int:
        with self._lock:
            return len(self._observations.get(labels.key(), ()))


class Gauge(Metric):

    def __init__(self, name: str, description: str) -> None:
        self.name = name
        self.description = description
        self._value = 0.0
        self._lock = threading.Lock()

    async def record(self, value: float, labels: MetricLabels) -> None:
        with self._lock:
            self._value = value

    def inc(self, delta: float = 1.0) -> None:
        with self._lock:
            self._value += delta

    def dec(self, delta: float = 1.0) -> None:
        self.inc(-delta)

    def get(self) -> float:
        with self._lock:
            return self._value


class InterceptorMetrics:
    """Per-engine interceptor metrics.

    Instances are owned by the component that records into them; nothing here
    is process-global.
    """

    def __init__(self) -> None:
        self.invocations_total = Counter(
            "aduib_intercept_invocations_total",
            "Total number of interceptor invocations",
        )
        self.invocation_duration = Histogram(
            "aduib_intercept_invocation_duration_seconds",
            "Interceptor invocation duration in seconds",
        )
        self.background_tasks = Gauge(
            "aduib_intercept_background_tasks",
            "Number of in-flight observability tasks",
        )

    async def record_invocation(
        self,
        interceptor: str,
        kind: str,
        phase: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        labels = MetricLabels(interceptor=interceptor, kind=kind, phase=phase, status=status)
        await self.invocations_total.inc(labels)
        await self.invocation_duration.record(duration_seconds, labels)
