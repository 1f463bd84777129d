"""Deferred work scheduling on the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar

__all__ = ["Scheduler", "LoopScheduler"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Scheduler(Protocol):
    """Runs a coroutine after the current turn of the event loop."""

    def submit(self, factory: Callable[[], Awaitable[T]], *, name: str | None = None) -> asyncio.Task[T]:
        ...


class LoopScheduler:
    """Schedules deferred work as tasks on an asyncio loop.

    ``loop.create_task`` never runs the coroutine synchronously, so the caller's
    turn always finishes before any deferred work begins.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._inflight: set[asyncio.Task[Any]] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def submit(self, factory: Callable[[], Awaitable[T]], *, name: str | None = None) -> asyncio.Task[T]:
        loop = self._loop or asyncio.get_running_loop()
        job = loop.create_task(_as_coroutine(factory), name=name)
        self._inflight.add(job)
        job.add_done_callback(self._finished)
        return job

    async def drain(self) -> None:
        """Wait until every submitted task has settled."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _finished(self, job: asyncio.Task[Any]) -> None:
        self._inflight.discard(job)
        if job.cancelled():
            return
        exc = job.exception()
        if exc is not None:
            LOGGER.error("Deferred task %s failed: %s", job.get_name(), exc)


async def _as_coroutine(factory: Callable[[], Awaitable[T]]) -> T:
    return await factory()
