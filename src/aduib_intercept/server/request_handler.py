from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from aduib_intercept.exceptions import InvalidParamsError, MethodNotFoundError
from aduib_intercept.observability.logging import LogContext
from aduib_intercept.protocol.methods import InterceptorMethod, InterceptorNotification
from aduib_intercept.protocol.types import (
    ExecuteChainRequestParams,
    ExecuteChainResult,
    InterceptorListChangedNotificationParams,
    InterceptorsCapability,
    InvokeInterceptorRequestParams,
    InvokeInterceptorResult,
    ListInterceptorsRequestParams,
    ListInterceptorsResult,
)
from aduib_intercept.server.chain import ChainExecutor
from aduib_intercept.server.context import CancellationToken, ServerSession
from aduib_intercept.server.registry import DEFAULT_PAGE_SIZE, InterceptorRegistry
from aduib_intercept.server.services import ServiceResolver

logger = logging.getLogger(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)


class InterceptorRequestHandler:
    """Serves the interceptor protocol methods for any transport.

    Args:
        registry: Registered interceptors.
        executor: Chain executor bound to the same registry.
        services: Service resolver handed to every call.
        page_size: Page size for ``interceptors/list``.
    """

    def __init__(
        self,
        registry: InterceptorRegistry,
        executor: ChainExecutor,
        services: ServiceResolver | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.registry = registry
        self.executor = executor
        self.services = services
        self.page_size = page_size
        self._sessions: dict[str, ServerSession] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._remove_listener: Callable[[], None] | None = None
        self.open()

    def capabilities(self) -> dict[str, Any]:
        return {"interceptors": InterceptorsCapability(list_changed=True).to_wire()}

    async def list_interceptors(
        self, params: ListInterceptorsRequestParams | Mapping[str, Any] | None = None
    ) -> ListInterceptorsResult:
        request = _parse(ListInterceptorsRequestParams, params or {})
        page, next_cursor = self.registry.list(request.cursor, self.page_size)
        return ListInterceptorsResult(
            interceptors=[descriptor.to_protocol() for descriptor in page],
            next_cursor=next_cursor,
        )

    async def invoke_interceptor(
        self,
        params: InvokeInterceptorRequestParams | Mapping[str, Any],
        session: ServerSession | None = None,
        cancellation: CancellationToken | None = None,
    ) -> InvokeInterceptorResult:
        request = _parse(InvokeInterceptorRequestParams, params)
        return await self.executor.invoke(
            request,
            services=self.services,
            session=session,
            cancellation=cancellation,
        )

    async def execute_chain(
        self,
        params: ExecuteChainRequestParams | Mapping[str, Any],
        session: ServerSession | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ExecuteChainResult:
        request = _parse(ExecuteChainRequestParams, params)
        return await self.executor.execute(
            request,
            services=self.services,
            session=session,
            cancellation=cancellation,
        )

    async def handle(
        self,
        method: str,
        params: Mapping[str, Any] | None,
        session: ServerSession | None = None,
        cancellation: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Dispatch one protocol request by method name and return the wire result."""
        with LogContext(session_id=session.session_id if session else None):
            if method == InterceptorMethod.LIST:
                result: BaseModel = await self.list_interceptors(params)
            elif method == InterceptorMethod.INVOKE:
                result = await self.invoke_interceptor(_require(params), session, cancellation)
            elif method == InterceptorMethod.EXECUTE_CHAIN:
                result = await self.execute_chain(_require(params), session, cancellation)
            else:
                raise MethodNotFoundError(message=f"Method '{method}' is not supported")
            return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    def subscribe(self, session: ServerSession) -> Callable[[], None]:
        """Send list-changed notifications to ``session`` until the returned function is called."""
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
        self._sessions[session.session_id] = session
        return lambda: self.unsubscribe(session)

    def unsubscribe(self, session: ServerSession) -> None:
        self._sessions.pop(session.session_id, None)

    def open(self) -> None:
        """Follow registry changes; called on construction and again after ``close``."""
        if self._remove_listener is None:
            self._remove_listener = self.registry.add_listener(self._on_list_changed)

    def close(self) -> None:
        remove, self._remove_listener = self._remove_listener, None
        if remove is not None:
            remove()
        self._sessions.clear()

    def _on_list_changed(self) -> None:
        for session in list(self._sessions.values()):
            self._dispatch(self._notify(session))

    async def _notify(self, session: ServerSession) -> None:
        try:
            await session.send_notification(
                InterceptorNotification.LIST_CHANGED, InterceptorListChangedNotificationParams().to_wire()
            )
        except Exception:
            logger.exception("Failed to send list-changed notification to session %s", session.session_id)

    def _dispatch(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None and (self._loop is None or running is self._loop):
            task = running.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        elif self._loop is not None and not self._loop.is_closed():
            asyncio.run_coroutine_threadsafe(coro, self._loop)
        else:
            coro.close()
            logger.debug("Dropping list-changed notification: no event loop")


def _require(params: Mapping[str, Any] | None) -> Mapping[str, Any]:
    if params is None:
        raise InvalidParamsError(message="Missing params")
    return params


def _parse(model: type[ParamsT], params: ParamsT | Mapping[str, Any]) -> ParamsT:
    if isinstance(params, model):
        return params
    try:
        return model.model_validate(params)
    except ValidationError as exc:
        raise InvalidParamsError(
            message=f"Invalid params for {model.__name__}",
            data={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            cause=exc,
        ) from exc
