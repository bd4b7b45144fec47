from __future__ import annotations

from enum import StrEnum


class InterceptorMethod(StrEnum):
    """Protocol method names served by the interceptor engine."""

    LIST = "interceptors/list"
    INVOKE = "interceptor/invoke"
    EXECUTE_CHAIN = "interceptor/executeChain"

    @classmethod
    def list(cls) -> list[str]:
        """List all request method names."""
        return [method.value for method in cls]


class InterceptorNotification(StrEnum):
    """Notification method names emitted by the server."""

    LIST_CHANGED = "notifications/interceptors/list_changed"
    PROGRESS = "notifications/progress"
