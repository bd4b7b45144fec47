"""Lifecycle facade wiring the engine pieces together.

``InterceptorServer`` owns one registry, invocation engine, task tracker,
metadata sink and request handler. Use it as an async context manager so the
observability tracker is started and drained and the thread pool released::

    async with InterceptorServer() as server:
        server.register_function(redact, kind="Mutation")
        result = await server.handler.execute_chain({...})
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

from starlette.applications import Starlette

from aduib_intercept.config import InterceptorEngineConfig
from aduib_intercept.observability.logging import configure_logging
from aduib_intercept.observability.metrics import InterceptorMetrics
from aduib_intercept.protocol.types import InterceptorPhase, InterceptorType
from aduib_intercept.server.background import MetadataSink, ObservabilityTaskTracker
from aduib_intercept.server.chain import ChainExecutor
from aduib_intercept.server.discovery import collect_interceptors
from aduib_intercept.server.interceptor import ServerInterceptor, TargetFactory
from aduib_intercept.server.invoker import InvocationEngine
from aduib_intercept.server.jsonrpc_app import DEFAULT_RPC_PATH, InterceptorJsonRpcApp
from aduib_intercept.server.registry import InterceptorRegistry
from aduib_intercept.server.request_handler import InterceptorRequestHandler
from aduib_intercept.server.services import ServiceResolver

logger = logging.getLogger(__name__)


class InterceptorServer:
    """Owns every engine component for one serving process.

    Args:
        config: Engine configuration; defaults apply when omitted.
        services: Service resolver for interceptor dependencies.
        configure_logs: Install the structured log handler from ``config.logging``.
    """

    def __init__(
        self,
        config: InterceptorEngineConfig | None = None,
        services: ServiceResolver | None = None,
        configure_logs: bool = False,
    ) -> None:
        self.config = config or InterceptorEngineConfig()
        if configure_logs:
            configure_logging(self.config.logging.format, self.config.logging.level)
        self.metrics = InterceptorMetrics()
        self.registry = InterceptorRegistry()
        self.sink = MetadataSink()
        self.engine = InvocationEngine(max_workers=self.config.engine.max_workers, metrics=self.metrics)
        self.tracker = ObservabilityTaskTracker(
            sink=self.sink,
            metrics=self.metrics,
            drain_timeout=self.config.engine.drain_timeout_seconds,
        )
        self.executor = ChainExecutor(self.registry, self.engine, self.tracker)
        self.handler = InterceptorRequestHandler(
            self.registry,
            self.executor,
            services=services,
            page_size=self.config.engine.list_page_size,
        )
        self._started = False

    async def __aenter__(self) -> InterceptorServer:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, traceback: Any) -> None:
        await self.stop()

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        self.engine.open()
        self.handler.open()
        self.tracker.start()
        self._started = True
        logger.info(
            "Interceptor server %s %s started with %d interceptor(s)",
            self.config.server.name,
            self.config.server.version,
            len(self.registry),
        )

    async def stop(self, timeout: float | None = None) -> None:
        """Drain observability work and release the thread pool.

        Registered interceptors are kept, so ``start`` can bring the server back.
        """
        if not self._started:
            return
        self._started = False
        await self.tracker.drain(timeout)
        self.engine.close()
        self.handler.close()
        logger.info("Interceptor server %s stopped", self.config.server.name)

    def register(self, interceptor: ServerInterceptor) -> ServerInterceptor:
        self.registry.register(interceptor)
        return interceptor

    def register_function(
        self,
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
        return self.register(
            ServerInterceptor.from_function(
                fn,
                kind=kind,
                id=id,
                name=name,
                description=description,
                priority=priority,
                events=events,
                phases=phases,
                target_factory=target_factory,
            )
        )

    def register_from(self, source: Any, target_factory: TargetFactory | None = None) -> list[ServerInterceptor]:
        """Register every ``@interceptor``-decorated callable of a module, class or instance."""
        collected = collect_interceptors(source, target_factory=target_factory)
        self.registry.register_all(collected)
        return collected

    def build_http_app(self, rpc_path: str = DEFAULT_RPC_PATH, **kwargs: Any) -> Starlette:
        """Starlette app serving the protocol over JSON-RPC; startup and shutdown follow this server."""
        app = InterceptorJsonRpcApp(
            self.handler,
            server_name=self.config.server.name,
            server_version=self.config.server.version,
        )
        kwargs.setdefault("lifespan", self._lifespan)
        return app.build(rpc_path, **kwargs)

    @contextlib.asynccontextmanager
    async def _lifespan(self, app: Starlette) -> AsyncIterator[None]:
        await self.start()
        try:
            yield
        finally:
            await self.stop()
