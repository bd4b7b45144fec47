from __future__ import annotations

import base64
import binascii
import bisect
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from aduib_intercept.exceptions import DuplicateInterceptorIdError, InvalidCursorError, UnknownInterceptorIdError
from aduib_intercept.protocol.types import InterceptorPhase
from aduib_intercept.server.descriptor import InterceptorDescriptor, execution_order
from aduib_intercept.server.interceptor import ServerInterceptor

logger = logging.getLogger(__name__)

ListChangedListener = Callable[[], None]

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class _Snapshot:
    by_id: Mapping[str, ServerInterceptor]
    ids: tuple[str, ...]


_EMPTY = _Snapshot(by_id=MappingProxyType({}), ids=())


def encode_cursor(last_id: str) -> str:
    return base64.urlsafe_b64encode(last_id.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> str:
    try:
        last_id = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursorError(message=f"Invalid cursor: {cursor!r}", cause=exc) from exc
    # the decoder skips foreign characters; only canonical encodings are accepted
    if not last_id or encode_cursor(last_id) != cursor:
        raise InvalidCursorError(message=f"Invalid cursor: {cursor!r}")
    return last_id


class InterceptorRegistry:
    """Process-wide set of registered interceptors.

    Writers serialize on a lock, build a new immutable snapshot and swap it
    in; readers work on whatever snapshot is current and never block.
    """

    def __init__(self, interceptors: Iterable[ServerInterceptor] | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = _EMPTY
        self._listeners: list[ListChangedListener] = []
        for interceptor in interceptors or ():
            self.register(interceptor)

    def __len__(self) -> int:
        return len(self._snapshot.ids)

    def __contains__(self, interceptor_id: object) -> bool:
        return interceptor_id in self._snapshot.by_id

    def register(self, interceptor: ServerInterceptor) -> None:
        """Add an interceptor; its id must not be registered yet."""
        with self._lock:
            current = self._snapshot
            if interceptor.id in current.by_id:
                raise DuplicateInterceptorIdError(
                    message=f"Interceptor '{interceptor.id}' is already registered",
                    interceptor_id=interceptor.id,
                )
            by_id = dict(current.by_id)
            by_id[interceptor.id] = interceptor
            self._swap(by_id)
        logger.debug("Registered interceptor %s (%s)", interceptor.id, interceptor.kind.value)
        self._notify()

    def register_all(self, interceptors: Iterable[ServerInterceptor]) -> None:
        for interceptor in interceptors:
            self.register(interceptor)

    def unregister(self, interceptor_id: str) -> ServerInterceptor:
        with self._lock:
            current = self._snapshot
            if interceptor_id not in current.by_id:
                raise UnknownInterceptorIdError(
                    message=f"Unknown interceptor id '{interceptor_id}'",
                    interceptor_id=interceptor_id,
                )
            by_id = dict(current.by_id)
            removed = by_id.pop(interceptor_id)
            self._swap(by_id)
        logger.debug("Unregistered interceptor %s", interceptor_id)
        self._notify()
        return removed

    def clear(self) -> None:
        with self._lock:
            had_entries = bool(self._snapshot.ids)
            self._snapshot = _EMPTY
        if had_entries:
            self._notify()

    def resolve(self, interceptor_id: str) -> ServerInterceptor:
        interceptor = self._snapshot.by_id.get(interceptor_id)
        if interceptor is None:
            raise UnknownInterceptorIdError(
                message=f"Unknown interceptor id '{interceptor_id}'",
                interceptor_id=interceptor_id,
            )
        return interceptor

    def lookup(self, event: str, phase: InterceptorPhase) -> list[InterceptorDescriptor]:
        """Descriptors applicable to ``event`` and ``phase`` in execution order."""
        phase = InterceptorPhase(phase)
        matching = (i.descriptor for i in self._snapshot.by_id.values() if i.descriptor.matches(event, phase))
        return execution_order(matching)

    def descriptors(self) -> list[InterceptorDescriptor]:
        snapshot = self._snapshot
        return [snapshot.by_id[i].descriptor for i in snapshot.ids]

    def list(
        self, cursor: str | None = None, page_size: int = DEFAULT_PAGE_SIZE
    ) -> tuple[list[InterceptorDescriptor], str | None]:
        """Return one page of descriptors ordered by id, plus the cursor of the next page."""
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        snapshot = self._snapshot
        start = 0
        if cursor:
            start = bisect.bisect_right(snapshot.ids, decode_cursor(cursor))
        page_ids = snapshot.ids[start : start + page_size]
        page = [snapshot.by_id[i].descriptor for i in page_ids]
        next_cursor = None
        if page_ids and start + page_size < len(snapshot.ids):
            next_cursor = encode_cursor(page_ids[-1])
        return page, next_cursor

    def add_listener(self, listener: ListChangedListener) -> Callable[[], None]:
        """Call ``listener`` after every change to the registered set; returns an unsubscribe function."""
        with self._lock:
            self._listeners = [*self._listeners, listener]

        def _remove() -> None:
            with self._lock:
                self._listeners = [l for l in self._listeners if l is not listener]

        return _remove

    def _swap(self, by_id: dict[str, ServerInterceptor]) -> None:
        self._snapshot = _Snapshot(by_id=MappingProxyType(by_id), ids=tuple(sorted(by_id)))

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener()
            except Exception:
                logger.exception("Interceptor list-changed listener failed")
