from __future__ import annotations

import asyncio
from typing import Any

import pytest

from aduib_intercept.exceptions import InvalidParamsError, MethodNotFoundError, UnknownInterceptorIdError
from aduib_intercept.server.context import ServerSession
from aduib_intercept.server.interceptor import ServerInterceptor
from aduib_intercept.server.request_handler import InterceptorRequestHandler
from aduib_intercept.server.results import ModifiedPayload
from aduib_intercept.server.services import ScopedServiceResolver


class Greeter:
    def greet(self, name: str) -> str:
        return f"hello {name}"


def _greet(name: str, greeter: Greeter) -> ModifiedPayload:
    """Greets by name."""
    return ModifiedPayload({"greeting": greeter.greet(name)}, metadata={"by": "greet"})


def _noop() -> None:
    return None


@pytest.fixture
def handler(registry, executor):
    services = ScopedServiceResolver()
    services.register(Greeter, Greeter())
    handler = InterceptorRequestHandler(registry, executor, services=services, page_size=2)
    yield handler
    handler.close()


@pytest.mark.asyncio
async def test_list_pages_through_descriptors(handler, add):
    add(_greet, id="greet", kind="Mutation", priority=3, events=["tools/call"], phases=["Request"])
    add(_noop, id="audit", kind="Observability")
    add(_noop, id="schema", kind="Validation")

    first = await handler.handle("interceptors/list", None)
    assert [i["id"] for i in first["interceptors"]] == ["audit", "greet"]
    assert first["interceptors"][1] == {
        "id": "greet",
        "name": "greet",
        "description": "Greets by name.",
        "type": "Mutation",
        "priority": 3,
        "applicableEvents": ["tools/call"],
        "phases": ["Request"],
    }

    second = await handler.handle("interceptors/list", {"cursor": first["nextCursor"]})
    assert [i["id"] for i in second["interceptors"]] == ["schema"]
    assert "nextCursor" not in second


@pytest.mark.asyncio
async def test_invoke_uses_wire_names_and_services(handler, add):
    add(_greet, id="greet", kind="Mutation")
    result = await handler.handle(
        "interceptor/invoke",
        {"interceptorId": "greet", "event": "tools/call", "phase": "request", "payload": {"name": "ada"}},
    )
    assert result == {"modifiedPayload": {"greeting": "hello ada"}, "metadata": {"by": "greet"}}


@pytest.mark.asyncio
async def test_execute_chain_returns_all_validation_results(handler, add):
    add(_greet, id="greet", kind="Mutation")
    result = await handler.handle(
        "interceptor/executeChain",
        {"interceptorIds": ["greet"], "event": "tools/call", "phase": "Request", "payload": {"name": "bo"}},
    )
    assert result == {
        "modifiedPayload": {"greeting": "hello bo"},
        "allValidationResults": [],
        "metadata": {"greet": {"by": "greet"}},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, params",
    [
        ("interceptor/invoke", None),
        ("interceptor/invoke", {"event": "e", "phase": "Request"}),
        ("interceptor/executeChain", {"interceptorIds": "greet", "event": "e", "phase": "Request"}),
        ("interceptor/executeChain", {"interceptorIds": [], "event": "e", "phase": "Sideways"}),
    ],
)
async def test_invalid_params(handler, method, params):
    with pytest.raises(InvalidParamsError):
        await handler.handle(method, params)


@pytest.mark.asyncio
async def test_unknown_method_and_unknown_interceptor(handler):
    with pytest.raises(MethodNotFoundError):
        await handler.handle("tools/list", {})
    with pytest.raises(UnknownInterceptorIdError):
        await handler.handle("interceptor/invoke", {"interceptorId": "ghost", "event": "e", "phase": "Request"})


def test_capabilities_advertise_list_changed(handler):
    assert handler.capabilities() == {"interceptors": {"listChanged": True}}


@pytest.mark.asyncio
async def test_subscribed_sessions_hear_about_registry_changes(handler, registry):
    received: list[tuple[str, Any]] = []
    arrived = asyncio.Event()

    async def sender(method, params):
        received.append((method, params))
        arrived.set()

    session = ServerSession(sender=sender)
    unsubscribe = handler.subscribe(session)
    registry.register(ServerInterceptor.from_function(_noop, id="late", kind="Validation"))
    await asyncio.wait_for(arrived.wait(), timeout=2)
    assert received == [("notifications/interceptors/list_changed", {})]

    unsubscribe()
    registry.unregister("late")
    await asyncio.sleep(0.01)
    assert len(received) == 1


@pytest.mark.asyncio
async def test_registry_changes_from_other_threads_still_notify(handler, registry):
    arrived = asyncio.Event()

    async def sender(method, params):
        arrived.set()

    handler.subscribe(ServerSession(sender=sender))
    await asyncio.to_thread(
        registry.register, ServerInterceptor.from_function(_noop, id="threaded", kind="Validation")
    )
    await asyncio.wait_for(arrived.wait(), timeout=2)


@pytest.mark.asyncio
async def test_failing_sender_is_logged_not_raised(handler, registry, caplog):
    async def sender(method, params):
        raise ConnectionError("peer gone")

    handler.subscribe(ServerSession(session_id="s-1", sender=sender))
    registry.register(ServerInterceptor.from_function(_noop, id="x", kind="Validation"))
    await asyncio.sleep(0.05)
    assert "s-1" in caplog.text
