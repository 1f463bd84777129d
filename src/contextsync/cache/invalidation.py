"""Buffer lifecycle events and the cache invalidation bus."""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from threading import RLock
from typing import Callable, List, MutableMapping, Type

from .ttl_cache import TTLCache

__all__ = [
    "BufferEvent",
    "BufferSavedEvent",
    "BufferClosedEvent",
    "InvalidationBus",
    "CacheInvalidator",
    "BUFFER_SCOPED_FAMILIES",
]

LOGGER = logging.getLogger(__name__)

# Cache families whose keys embed a buffer number: ``<family>_<bufnr>_<revision>``.
BUFFER_SCOPED_FAMILIES: tuple[str, ...] = (
    "highlights",
    "recent_buffers",
    "lsp_symbols",
    "lsp_context",
)


class BufferEvent:
    """Base class for buffer lifecycle events."""

    __slots__ = ("bufnr", "path")

    def __init__(self, bufnr: int, *, path: str | None = None) -> None:
        self.bufnr = int(bufnr)
        self.path = path


class BufferSavedEvent(BufferEvent):
    """Published after a buffer is written to disk."""

    __slots__ = ()


class BufferClosedEvent(BufferEvent):
    """Published when a buffer is deleted or wiped out."""

    __slots__ = ()


Subscriber = Callable[[BufferEvent], None]


@dataclass(slots=True)
class _Subscriber:
    event_type: Type[BufferEvent]
    strong_handler: Subscriber | None
    weak_ref: Callable[[], Subscriber | None] | None = None

    def resolve(self) -> Subscriber | None:
        if self.weak_ref is not None:
            return self.weak_ref()
        return self.strong_handler


class InvalidationBus:
    """Synchronous pub/sub bus carrying buffer events to cache owners."""

    def __init__(self) -> None:
        self._subscribers: MutableMapping[Type[BufferEvent], List[_Subscriber]] = {}
        self._lock = RLock()

    def subscribe(
        self,
        event_type: Type[BufferEvent],
        handler: Subscriber,
        *,
        weak: bool = False,
    ) -> None:
        weak_ref: Callable[[], Subscriber | None] | None = None
        if weak:
            try:
                weak_ref = weakref.WeakMethod(handler)  # type: ignore[arg-type]
            except TypeError:
                weak_ref = None
        subscriber = _Subscriber(
            event_type=event_type,
            strong_handler=None if weak_ref is not None else handler,
            weak_ref=weak_ref,
        )
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(subscriber)

    def publish(self, event: BufferEvent) -> None:
        to_invoke: list[Subscriber] = []
        with self._lock:
            for event_type, subscribers in list(self._subscribers.items()):
                if not isinstance(event, event_type):
                    continue
                live: list[_Subscriber] = []
                for subscriber in subscribers:
                    callback = subscriber.resolve()
                    if callback is None:
                        continue
                    live.append(subscriber)
                    to_invoke.append(callback)
                if live:
                    self._subscribers[event_type] = live
                else:
                    self._subscribers.pop(event_type, None)
        for callback in to_invoke:
            try:
                callback(event)
            except Exception:  # pragma: no cover - subscriber isolation
                LOGGER.exception("Buffer event subscriber failed")

    def subscriber_count(self, event_type: Type[BufferEvent]) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, ()))


class CacheInvalidator:
    """Clears TTL cache families in response to buffer events.

    A save may change version control state, so ``git_info`` is dropped. A
    closed buffer drops every buffer-scoped family for that buffer number.
    """

    def __init__(self, cache: TTLCache, bus: InvalidationBus) -> None:
        self._cache = cache
        self._bus = bus
        bus.subscribe(BufferSavedEvent, self._handle_saved, weak=True)  # type: ignore[arg-type]
        bus.subscribe(BufferClosedEvent, self._handle_closed, weak=True)  # type: ignore[arg-type]

    def _handle_saved(self, event: BufferSavedEvent) -> None:
        removed = self._cache.clear("git_info")
        LOGGER.debug("Buffer %s saved; dropped %d git entries", event.bufnr, removed)

    def _handle_closed(self, event: BufferClosedEvent) -> None:
        removed = 0
        for family in BUFFER_SCOPED_FAMILIES:
            # Trailing separator keeps buffer 1 from matching buffer 12.
            removed += self._cache.clear(f"{family}_{event.bufnr}_")
        LOGGER.debug("Buffer %s closed; dropped %d cached entries", event.bufnr, removed)
