from __future__ import annotations

from aduib_intercept.observability.logging import (
    LEVEL_NAME_TO_INT,
    LOG_FORMAT_CONSOLE,
    LOG_FORMAT_ENV,
    LOG_FORMAT_JSON,
    ContextFilter,
    LogContext,
    StructuredConsoleFormatter,
    StructuredJSONFormatter,
    configure_logging,
    get_logger,
)
from aduib_intercept.observability.metrics import (
    Counter,
    Gauge,
    Histogram,
    InterceptorMetrics,
    Metric,
    MetricLabels,
)

__all__ = [
    "LEVEL_NAME_TO_INT",
    "LOG_FORMAT_CONSOLE",
    "LOG_FORMAT_ENV",
    "LOG_FORMAT_JSON",
    "ContextFilter",
    "LogContext",
    "StructuredConsoleFormatter",
    "StructuredJSONFormatter",
    "configure_logging",
    "get_logger",
    "Counter",
    "Gauge",
    "Histogram",
    "InterceptorMetrics",
    "Metric",
    "MetricLabels",
]
