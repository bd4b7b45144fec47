"""Chain execution: partition by kind, then run each group its own way.

* Mutation interceptors run one after another in ``(priority, id)`` order,
  each receiving the payload produced by the previous one.
* Validation interceptors run concurrently against the original payload.
* Observability interceptors are handed to the task tracker and never
  influence the response.

The mutation and validation groups run concurrently with each other. A
failing mutation stops the mutation group only; validations still complete
and the failure is raised as ``MutationStepError`` with the partial result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from aduib_intercept.exceptions import (
    InterceptorCancelledError,
    InterceptorException,
    MutationStepError,
)
from aduib_intercept.protocol.types import (
    ExecuteChainRequestParams,
    ExecuteChainResult,
    InterceptorType,
    InvokeInterceptorRequestParams,
    InvokeInterceptorResult,
    ValidationResult,
    ValidationSeverity,
)
from aduib_intercept.server.background import ObservabilityTaskTracker
from aduib_intercept.server.context import CancellationToken, RequestContext, ServerSession
from aduib_intercept.server.interceptor import ServerInterceptor
from aduib_intercept.server.invoker import InvocationEngine
from aduib_intercept.server.registry import InterceptorRegistry
from aduib_intercept.server.services import ServiceResolver

logger = logging.getLogger(__name__)


@dataclass
class _Partition:
    mutation: list[ServerInterceptor] = field(default_factory=list)
    validation: list[ServerInterceptor] = field(default_factory=list)
    observability: list[ServerInterceptor] = field(default_factory=list)


@dataclass
class _MutationOutcome:
    payload: Any
    metadata: dict[str, Any]
    failed: ServerInterceptor | None = None
    error: Exception | None = None


@dataclass
class _CallScope:
    """What every interceptor call of one chain shares."""

    services: ServiceResolver | None
    session: ServerSession
    cancellation: CancellationToken


class ChainExecutor:
    """Executes interceptor chains and single invocations against a registry.

    Args:
        registry: Source of registered interceptors; never mutated here.
        engine: Invocation engine used for every call.
        tracker: Task tracker owning observability work.
    """

    def __init__(
        self,
        registry: InterceptorRegistry,
        engine: InvocationEngine,
        tracker: ObservabilityTaskTracker,
    ) -> None:
        self._registry = registry
        self._engine = engine
        self._tracker = tracker

    async def execute(
        self,
        params: ExecuteChainRequestParams,
        *,
        services: ServiceResolver | None = None,
        session: ServerSession | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ExecuteChainResult:
        # unknown ids abort before anything runs
        resolved = [self._registry.resolve(i) for i in dict.fromkeys(params.interceptor_ids)]
        applicable = [i for i in resolved if i.descriptor.applies_to_phase(params.phase)]
        partition = _partition(applicable)
        scope = _CallScope(
            services=services,
            session=session or ServerSession(),
            cancellation=CancellationToken(parent=cancellation),
        )
        logger.debug(
            "Executing chain for %s/%s: %d mutation, %d validation, %d observability",
            params.event,
            params.phase.value,
            len(partition.mutation),
            len(partition.validation),
            len(partition.observability),
        )

        for interceptor in partition.observability:
            self._spawn_observability(interceptor, params, scope)

        loop = asyncio.get_running_loop()
        validation_tasks = [
            asyncio.create_task(self._run_validation(interceptor, params, scope))
            for interceptor in partition.validation
        ]
        unregister = scope.cancellation.register(
            lambda: loop.call_soon_threadsafe(_cancel_all, validation_tasks)
        )
        mutation_task = asyncio.create_task(self._run_mutations(partition.mutation, params, scope))
        try:
            outcome, validation_results = await asyncio.gather(
                mutation_task,
                self._collect_validations(validation_tasks, scope.cancellation),
            )
        except BaseException:
            if not scope.cancellation.cancelled:
                scope.cancellation.cancel("chain aborted")
            _cancel_all([mutation_task, *validation_tasks])
            await asyncio.gather(mutation_task, *validation_tasks, return_exceptions=True)
            raise
        finally:
            unregister()
            scope.cancellation.detach()

        findings: list[ValidationResult] = []
        metadata = dict(outcome.metadata)
        for interceptor, result in zip(partition.validation, validation_results):
            findings.extend(result.findings)
            if result.metadata:
                metadata[interceptor.id] = result.metadata
        chain_result = ExecuteChainResult(
            modified_payload=outcome.payload,
            all_validation_results=findings,
            metadata=metadata or None,
        )
        if outcome.failed is not None:
            failed_id = outcome.failed.id
            raise MutationStepError(
                message=f"Mutation interceptor '{failed_id}' failed: {_reason(outcome.error)}",
                interceptor_id=failed_id,
                cause=outcome.error,
                partial_result=chain_result,
            )
        return chain_result

    async def invoke(
        self,
        params: InvokeInterceptorRequestParams,
        *,
        services: ServiceResolver | None = None,
        session: ServerSession | None = None,
        cancellation: CancellationToken | None = None,
    ) -> InvokeInterceptorResult:
        """Run one interceptor directly; its failures propagate to the caller."""
        interceptor = self._registry.resolve(params.interceptor_id)
        if not interceptor.descriptor.applies_to_phase(params.phase):
            logger.debug("Interceptor %s does not apply to phase %s", interceptor.id, params.phase.value)
            return InvokeInterceptorResult()
        context = RequestContext(
            params=params,
            services=services,
            session=session or ServerSession(),
            cancellation=cancellation or CancellationToken(),
        )
        result = await self._engine.invoke(interceptor, context)
        if interceptor.kind is InterceptorType.OBSERVABILITY and result.metadata:
            self._tracker.sink.record_metadata(interceptor.id, result.metadata)
        return result

    async def _run_mutations(
        self,
        mutations: list[ServerInterceptor],
        params: ExecuteChainRequestParams,
        scope: _CallScope,
    ) -> _MutationOutcome:
        outcome = _MutationOutcome(payload=params.payload, metadata={})
        for interceptor in mutations:
            scope.cancellation.raise_if_cancelled(interceptor.id)
            context = _step_context(interceptor, params, outcome.payload, scope)
            try:
                result = await self._engine.invoke(interceptor, context)
            except Exception as exc:
                if isinstance(exc, InterceptorCancelledError) and scope.cancellation.cancelled:
                    raise
                logger.warning("Mutation interceptor %s failed; skipping remaining mutations", interceptor.id)
                outcome.failed = interceptor
                outcome.error = exc
                return outcome
            if result.modified_payload is not None:
                outcome.payload = result.modified_payload
            if result.metadata:
                outcome.metadata[interceptor.id] = result.metadata
        return outcome

    async def _run_validation(
        self,
        interceptor: ServerInterceptor,
        params: ExecuteChainRequestParams,
        scope: _CallScope,
    ) -> InvokeInterceptorResult:
        context = _step_context(interceptor, params, params.payload, scope)
        try:
            return await self._engine.invoke(interceptor, context)
        except Exception as exc:
            if isinstance(exc, InterceptorCancelledError) and scope.cancellation.cancelled:
                raise
            logger.warning("Validation interceptor %s failed: %s", interceptor.id, exc)
            finding = ValidationResult(
                severity=ValidationSeverity.ERROR,
                message=f"Interceptor '{interceptor.id}' failed: {_reason(exc)}",
            )
            return InvokeInterceptorResult(validation_results=[finding])

    async def _collect_validations(
        self, tasks: list[asyncio.Task[InvokeInterceptorResult]], token: CancellationToken
    ) -> list[InvokeInterceptorResult]:
        try:
            return list(await asyncio.gather(*tasks))
        except asyncio.CancelledError:
            if token.cancelled:
                raise InterceptorCancelledError(message=token.reason or "Interceptor chain cancelled") from None
            raise

    def _spawn_observability(
        self,
        interceptor: ServerInterceptor,
        params: ExecuteChainRequestParams,
        scope: _CallScope,
    ) -> None:
        context = RequestContext(
            params=_step_params(interceptor, params, params.payload),
            services=scope.services,
            session=scope.session,
            cancellation=self._tracker.shutdown_token,
        )
        self._tracker.spawn(interceptor.id, lambda: self._engine.invoke(interceptor, context))


def _partition(interceptors: list[ServerInterceptor]) -> _Partition:
    partition = _Partition()
    for interceptor in sorted(interceptors, key=lambda i: i.descriptor.sort_key):
        if interceptor.kind is InterceptorType.MUTATION:
            partition.mutation.append(interceptor)
        elif interceptor.kind is InterceptorType.VALIDATION:
            partition.validation.append(interceptor)
        else:
            partition.observability.append(interceptor)
    return partition


def _step_params(
    interceptor: ServerInterceptor, params: ExecuteChainRequestParams, payload: Any
) -> InvokeInterceptorRequestParams:
    return InvokeInterceptorRequestParams(
        interceptor_id=interceptor.id,
        event=params.event,
        phase=params.phase,
        payload=payload,
        meta=params.meta,
    )


def _step_context(
    interceptor: ServerInterceptor, params: ExecuteChainRequestParams, payload: Any, scope: _CallScope
) -> RequestContext:
    return RequestContext(
        params=_step_params(interceptor, params, payload),
        services=scope.services,
        session=scope.session,
        cancellation=scope.cancellation,
    )


def _cancel_all(tasks: list[asyncio.Task[Any]]) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()


def _reason(exc: BaseException | None) -> str:
    if isinstance(exc, InterceptorException) and exc.cause is not None:
        return str(exc.cause) or type(exc.cause).__name__
    return str(exc) if exc is not None else "unknown error"
