"""Ambient per-request values handed to interceptors.

Everything in this module can be bound to an interceptor argument by
annotation: ``CancellationToken``, ``ServerSession``, ``ProgressReporter``,
``RequestContext`` and the ``InvokeInterceptorRequestParams`` of the call.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from aduib_intercept.exceptions import InterceptorCancelledError
from aduib_intercept.protocol.methods import InterceptorNotification
from aduib_intercept.protocol.types import InvokeInterceptorRequestParams, ProgressNotificationParams

if TYPE_CHECKING:
    from aduib_intercept.server.services import ServiceResolver

logger = logging.getLogger(__name__)

NotificationSender = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class CancellationToken:
    """Thread-safe cancellation signal.

    Tokens can be chained: cancelling a parent cancels every child created
    from it, but not the other way round.
    """

    def __init__(self, parent: CancellationToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_handle = 0
        self._reason: str | None = None
        self._detach_parent: Callable[[], None] | None = None
        if parent is not None:
            self._detach_parent = parent.register(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation; returns a function that unregisters it.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                handle = self._next_handle
                self._next_handle += 1
                self._callbacks[handle] = callback
                return lambda: self._unregister(handle)
        callback()
        return lambda: None

    def _unregister(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def detach(self) -> None:
        """Stop following the parent token; a no-op for root tokens."""
        detach, self._detach_parent = self._detach_parent, None
        if detach is not None:
            detach()

    def raise_if_cancelled(self, interceptor_id: str | None = None) -> None:
        if self._event.is_set():
            raise InterceptorCancelledError(
                message=self._reason or "Interceptor call cancelled",
                interceptor_id=interceptor_id,
            )

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self._event.is_set():
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            loop.call_soon_threadsafe(lambda: waiter.done() or waiter.set_result(None))

        unregister = self.register(_wake)
        try:
            await waiter
        finally:
            unregister()


@dataclass
class ServerSession:
    """Handle identifying the server and the client session a call belongs to.

    Attributes:
        session_id: Opaque session identifier.
        server_name: Name advertised by the serving process.
        server_version: Version advertised by the serving process.
        sender: Optional transport callback used to push notifications.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    server_name: str = "aduib-intercept"
    server_version: str = "0.1.0"
    sender: NotificationSender | None = None

    @property
    def can_notify(self) -> bool:
        return self.sender is not None

    async def send_notification(self, method: str, params: dict[str, Any] | None = None) -> None:
        if self.sender is None:
            return
        result = self.sender(method, params or {})
        if inspect.isawaitable(result):
            await result


class ProgressReporter:
    """Relays progress reports to the party that supplied a progress token.

    ``report`` is safe to call from the event loop or from a worker thread
    running a synchronous handler.
    """

    def __init__(
        self,
        progress_token: str | int,
        session: ServerSession,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.progress_token = progress_token
        self._session = session
        self._loop = loop
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def enabled(self) -> bool:
        return self._session.can_notify

    async def _send(self, params: dict[str, Any]) -> None:
        try:
            await self._session.send_notification(InterceptorNotification.PROGRESS, params)
        except Exception:
            logger.exception(
                "Failed to send progress for token %s to session %s",
                self.progress_token,
                self._session.session_id,
            )

    def report(self, progress: float, total: float | None = None, message: str | None = None) -> None:
        if not self._session.can_notify:
            return
        params = ProgressNotificationParams(
            progress_token=self.progress_token,
            progress=progress,
            total=total,
            message=message,
        ).to_wire()
        coro = self._send(params)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None:
            task = running.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        elif self._loop is not None and not self._loop.is_closed():
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()
            logger.debug("Dropping progress report for token %s: no event loop", self.progress_token)


class NullProgressReporter(ProgressReporter):
    """Progress reporter used when the caller supplied no progress token."""

    def __init__(self) -> None:
        super().__init__(progress_token="", session=ServerSession())

    @property
    def enabled(self) -> bool:
        return False

    def report(self, progress: float, total: float | None = None, message: str | None = None) -> None:
        return None


@dataclass
class RequestContext:
    """Everything one interceptor invocation can see.

    Attributes:
        params: The invocation request (interceptor id, event, phase, payload).
        services: Service resolver for the call, if any.
        session: Server/session handle.
        cancellation: Cancellation signal scoped to the call.
        progress: Reporter bound to the request's progress token.
    """

    params: InvokeInterceptorRequestParams
    services: ServiceResolver | None = None
    session: ServerSession = field(default_factory=ServerSession)
    cancellation: CancellationToken = field(default_factory=CancellationToken)
    progress: ProgressReporter | None = None

    def __post_init__(self) -> None:
        if self.progress is None:
            self.progress = self._build_progress()

    def _build_progress(self) -> ProgressReporter:
        token = self.params.progress_token
        if token is None:
            return NullProgressReporter()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        return ProgressReporter(token, self.session, loop)

    @property
    def interceptor_id(self) -> str:
        return self.params.interceptor_id
