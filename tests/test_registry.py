from __future__ import annotations

import threading

import pytest

from aduib_intercept.exceptions import DuplicateInterceptorIdError, InvalidCursorError, UnknownInterceptorIdError
from aduib_intercept.protocol.types import InterceptorPhase, InterceptorType
from aduib_intercept.server.interceptor import ServerInterceptor
from aduib_intercept.server.registry import InterceptorRegistry, decode_cursor, encode_cursor


def _noop() -> None:
    return None


def _interceptor(id: str, kind: InterceptorType = InterceptorType.VALIDATION, **options) -> ServerInterceptor:
    return ServerInterceptor.from_function(_noop, id=id, kind=kind, **options)


def test_register_rejects_duplicate_ids():
    registry = InterceptorRegistry()
    registry.register(_interceptor("pii"))
    with pytest.raises(DuplicateInterceptorIdError) as ei:
        registry.register(_interceptor("pii", kind=InterceptorType.MUTATION))
    assert ei.value.interceptor_id == "pii"
    assert registry.resolve("pii").kind is InterceptorType.VALIDATION


def test_resolve_unknown_id_names_it():
    registry = InterceptorRegistry()
    with pytest.raises(UnknownInterceptorIdError) as ei:
        registry.resolve("ghost")
    assert ei.value.interceptor_id == "ghost"
    assert "ghost" in ei.value.message


def test_lookup_filters_by_event_and_phase_and_orders_by_priority_then_id():
    registry = InterceptorRegistry(
        [
            _interceptor("z-any", priority=0),
            _interceptor("b-request", priority=1, phases=["Request"]),
            _interceptor("a-request", priority=1, phases=["Request"]),
            _interceptor("response-only", phases=["Response"]),
            _interceptor("other-event", events=["prompts/get"]),
            _interceptor("tools-event", priority=-1, events=["tools/call"]),
        ]
    )
    found = registry.lookup("tools/call", InterceptorPhase.REQUEST)
    assert [d.id for d in found] == ["tools-event", "z-any", "a-request", "b-request"]

    found = registry.lookup("prompts/get", InterceptorPhase.RESPONSE)
    assert [d.id for d in found] == ["other-event", "response-only", "z-any"]


def test_list_pages_are_ordered_by_id_with_cursor():
    registry = InterceptorRegistry([_interceptor(i) for i in ["e", "c", "a", "d", "b"]])
    page, cursor = registry.list(page_size=2)
    assert [d.id for d in page] == ["a", "b"]
    assert cursor is not None

    page, cursor = registry.list(cursor, page_size=2)
    assert [d.id for d in page] == ["c", "d"]

    page, cursor = registry.list(cursor, page_size=2)
    assert [d.id for d in page] == ["e"]
    assert cursor is None


def test_list_continues_after_cursor_id_even_if_removed():
    registry = InterceptorRegistry([_interceptor(i) for i in ["a", "b", "c"]])
    _, cursor = registry.list(page_size=1)
    registry.unregister("a")
    page, _ = registry.list(cursor, page_size=5)
    assert [d.id for d in page] == ["b", "c"]


@pytest.mark.parametrize("cursor", ["not base64!", "%%%", encode_cursor("x") + "garbage"])
def test_list_rejects_unparseable_cursor(cursor):
    registry = InterceptorRegistry([_interceptor("a")])
    with pytest.raises(InvalidCursorError):
        registry.list(cursor)


def test_cursor_round_trip():
    assert decode_cursor(encode_cursor("mutation.redact")) == "mutation.redact"


def test_unregister_and_clear():
    registry = InterceptorRegistry([_interceptor("a"), _interceptor("b")])
    removed = registry.unregister("a")
    assert removed.id == "a"
    assert "a" not in registry
    with pytest.raises(UnknownInterceptorIdError):
        registry.unregister("a")
    registry.clear()
    assert len(registry) == 0


def test_listeners_fire_after_each_change_and_can_unsubscribe():
    registry = InterceptorRegistry()
    calls = []
    remove = registry.add_listener(lambda: calls.append(len(registry)))
    registry.register(_interceptor("a"))
    registry.register(_interceptor("b"))
    registry.unregister("a")
    registry.clear()
    assert calls == [1, 2, 1, 0]

    remove()
    registry.register(_interceptor("c"))
    assert calls == [1, 2, 1, 0]


def test_failing_listener_does_not_break_registration():
    registry = InterceptorRegistry()

    def broken() -> None:
        raise RuntimeError("listener bug")

    registry.add_listener(broken)
    registry.register(_interceptor("a"))
    assert "a" in registry


def test_readers_keep_their_snapshot_while_writers_swap():
    registry = InterceptorRegistry([_interceptor("a")])
    before = registry.descriptors()
    registry.register(_interceptor("b"))
    assert [d.id for d in before] == ["a"]
    assert [d.id for d in registry.descriptors()] == ["a", "b"]


def test_concurrent_registration_keeps_every_interceptor():
    registry = InterceptorRegistry()

    def worker(prefix: str) -> None:
        for n in range(50):
            registry.register(_interceptor(f"{prefix}-{n:02d}"))

    threads = [threading.Thread(target=worker, args=(f"t{i}",)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(registry) == 400
    assert len(registry.lookup("any", InterceptorPhase.REQUEST)) == 400
