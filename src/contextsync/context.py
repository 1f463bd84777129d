"""Editor context handle: snapshot ownership, load cycle and message assembly."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import time
from typing import Any, Callable

from .cache import BufferClosedEvent, BufferSavedEvent, CacheConfig, CacheInvalidator, InvalidationBus, TTLCache
from .delta import compute_delta
from .errors import ContextError
from .extractors import (
    LIGHTWEIGHT_FIELDS,
    GitSummary,
    Highlights,
    ImmediateExtractor,
    LspContext,
    PluginInventory,
    RecentBuffers,
    SemanticSnippets,
)
from .formatter import format_message
from .host import EditorHost, SnippetSearch
from .parts import MessagePart
from .privacy import PrivacyFilter
from .runner import ParallelTaskRunner
from .scheduler import LoopScheduler, Scheduler
from .settings import ContextSettings
from .snapshot import Selection, SessionState, Snapshot

__all__ = ["EditorContext", "UNREADABLE_FILE_MESSAGE", "DEFERRED_FIELDS"]

LOGGER = logging.getLogger(__name__)

UNREADABLE_FILE_MESSAGE = "File not added to context. Could not read."
DEFERRED_FIELDS: tuple[str, ...] = (
    "recent_buffers",
    "highlights",
    "lsp_context",
    "plugin_versions",
    "git_info",
    "semantic_snippets",
)

SnapshotCallback = Callable[[Snapshot], None]


class EditorContext:
    """Owns the live snapshot and everything needed to refresh and send it.

    All reads hand out deep copies; only this object mutates the snapshot.

    Example:
        context = EditorContext(host, settings=SettingsStore().load())
        context.load()
        await context.scheduler.drain()
        parts = context.format_message("explain @src/app.py")
        context.record_sent()
    """

    def __init__(
        self,
        host: EditorHost,
        *,
        settings: ContextSettings | None = None,
        cache: TTLCache | None = None,
        runner: ParallelTaskRunner | None = None,
        scheduler: Scheduler | None = None,
        privacy: PrivacyFilter | None = None,
        snippet_search: SnippetSearch | None = None,
        bus: InvalidationBus | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._host = host
        self._settings = settings or ContextSettings()
        self._clock = clock or time.monotonic
        self._root = self._settings.resolve_root()
        self._cache = cache or TTLCache(
            CacheConfig(max_entries=self._settings.cache.max_entries),
            clock=time.monotonic_ns if clock is None else _nanoseconds(self._clock),
        )
        self._runner = runner or ParallelTaskRunner(
            cwd=self._root, default_timeout_ms=self._settings.git_info.timeout_ms
        )
        self._scheduler = scheduler or LoopScheduler()
        self._privacy = privacy or PrivacyFilter.from_settings(self._root, self._settings.privacy)
        self._bus = bus or InvalidationBus()
        self._invalidator = CacheInvalidator(self._cache, self._bus)

        self._snapshot = Snapshot()
        self._session = SessionState()
        self._last_load_at: float | None = None
        self._last_revision: int | None = None

        self._immediate = ImmediateExtractor(
            host, self._settings, self._privacy, clock=self._clock, started_at=self._clock()
        )
        self._recent = RecentBuffers(host, self._cache, self._settings, self._privacy)
        self._lsp = LspContext(host, self._cache, self._settings, self._privacy)
        self._highlights = Highlights(host, self._cache, self._settings)
        self._plugins = PluginInventory(host, self._cache, self._settings)
        self._git = GitSummary(self._runner, self._cache, self._settings, self._privacy)
        self._semantic = SemanticSnippets(snippet_search, self._cache, self._settings, self._privacy)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def settings(self) -> ContextSettings:
        return self._settings

    @property
    def cache(self) -> TTLCache:
        return self._cache

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def bus(self) -> InvalidationBus:
        return self._bus

    @property
    def session(self) -> SessionState:
        return self._session

    @property
    def snapshot(self) -> Snapshot:
        """A deep copy of the live snapshot."""
        return self._snapshot.copy()

    # ------------------------------------------------------------------
    # Load cycle
    # ------------------------------------------------------------------
    def load(self, callback: SnapshotCallback | None = None) -> Snapshot:
        """Refresh the snapshot unless nothing changed within the debounce window.

        The immediate fields are filled before this returns; the deferred
        fields are scheduled and land later (``callback`` fires then).
        """

        now = self._clock()
        revision = self._acquire("buffer_revision", self._current_revision)
        if (
            self._last_load_at is not None
            and (now - self._last_load_at) * 1000.0 < self._settings.debounce_ms
            and revision == self._last_revision
        ):
            LOGGER.debug("Context load skipped; buffer unchanged within %sms", self._settings.debounce_ms)
            return self._snapshot.copy()

        self.load_immediate()
        self._last_load_at = now
        self._last_revision = revision
        self.load_deferred(callback)
        return self._snapshot.copy()

    def load_immediate(self) -> Snapshot:
        snapshot = self._snapshot
        extractor = self._immediate
        if self._acquire("current_buffer", extractor.current_buffer_is_file):
            snapshot.current_file = self._acquire("current_file", extractor.current_file)
            snapshot.cursor_data = self._acquire("cursor_data", extractor.cursor_data)
            snapshot.linter_errors = self._acquire("linter_errors", extractor.linter_errors)

        selection = self._acquire("selection", lambda: extractor.selection(snapshot.current_file))
        if selection is not None:
            snapshot.add_selection(selection)

        for name in LIGHTWEIGHT_FIELDS:
            setattr(snapshot, name, self._acquire(name, getattr(extractor, name)))
        return snapshot.copy()

    def load_deferred(self, callback: SnapshotCallback | None = None) -> asyncio.Task[Snapshot]:
        """Schedule the expensive fields to run after the current turn."""
        return self._scheduler.submit(lambda: self._run_deferred(callback), name="contextsync-deferred")

    async def _run_deferred(self, callback: SnapshotCallback | None) -> Snapshot:
        current = self._snapshot.current_file
        cursor = self._snapshot.cursor_data
        selections = self._snapshot.selections
        selection_text = selections[-1].content if selections else None
        current_path = self._acquire("current_path", self._current_path)

        producers: dict[str, Callable[[], Any]] = {
            "recent_buffers": self._recent.inventory,
            "highlights": self._highlights.collect,
            "lsp_context": self._lsp.collect,
            "plugin_versions": self._plugins.collect,
            "git_info": lambda: self._git.collect(current_path),
            "semantic_snippets": lambda: self._semantic.collect(current, cursor, selection_text),
        }
        values = await asyncio.gather(
            *(self._acquire_async(name, producers[name]) for name in DEFERRED_FIELDS)
        )
        for name, value in zip(DEFERRED_FIELDS, values):
            setattr(self._snapshot, name, value)

        result = self._snapshot.copy()
        if callback is not None:
            try:
                callback(result.copy())
            except Exception:
                LOGGER.exception("Deferred context callback failed")
        return result

    def _current_revision(self) -> int:
        return self._host.buffer_revision(self._host.current_buffer())

    def _current_path(self) -> str | None:
        info = self._host.buffer(self._host.current_buffer())
        return info.name if info is not None and info.name else None

    def _acquire(self, name: str, producer: Callable[[], Any]) -> Any:
        try:
            return producer()
        except ContextError as exc:
            LOGGER.debug("Context field %s unavailable: %s", name, exc)
        except Exception:
            LOGGER.warning("Context field %s failed", name, exc_info=True)
        return None

    async def _acquire_async(self, name: str, producer: Callable[[], Any]) -> Any:
        try:
            value = producer()
            if inspect.isawaitable(value):
                value = await value
            return value
        except ContextError as exc:
            LOGGER.debug("Context field %s unavailable: %s", name, exc)
        except Exception:
            LOGGER.warning("Context field %s failed", name, exc_info=True)
        return None

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------
    def add_file(self, path: str) -> bool:
        """Attach a file mention; notifies the user when the file is unreadable."""

        if not self._host.file_readable(path):
            self._host.notify(UNREADABLE_FILE_MESSAGE)
            return False
        absolute = os.path.abspath(os.path.expanduser(path))
        stored = self._privacy.redact_path(absolute) or absolute
        added = self._snapshot.add_file(stored)
        if added and self._settings.is_enabled("mentioned_files_content"):
            content = self._acquire("mentioned_files_content", lambda: self._host.read_file(absolute))
            if content is not None:
                limit = self._settings.mentioned_files_content.max_bytes
                text = content.encode("utf-8")[:limit].decode("utf-8", errors="ignore")
                if self._snapshot.mentioned_files_content is None:
                    self._snapshot.mentioned_files_content = {}
                self._snapshot.mentioned_files_content[stored] = self._privacy.redact_text(text)
        return added

    def add_subagent(self, name: str) -> bool:
        return self._snapshot.add_subagent(name)

    def add_selection(self, selection: Selection) -> bool:
        return self._snapshot.add_selection(selection)

    def clear_files(self) -> None:
        self._snapshot.clear_files()

    def clear_subagents(self) -> None:
        self._snapshot.clear_subagents()

    def unload_attachments(self) -> None:
        self._snapshot.unload_attachments()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------
    def compute_delta(self, settings: ContextSettings | None = None) -> Snapshot:
        return compute_delta(self._snapshot, self._session.last_sent, settings or self._settings)

    def format_message(self, prompt: str, settings: ContextSettings | None = None) -> list[MessagePart]:
        """Reduce the snapshot against the last send and serialize it."""

        config = settings or self._settings
        delta = compute_delta(self._snapshot, self._session.last_sent, config)
        recent_parts: list[MessagePart] = []
        if config.is_enabled("recent_buffers") and config.recent_buffers.attach_parts:
            if config.recent_buffers.symbols_only:
                recent_parts = self._acquire("recent_buffer_symbols", lambda: self._recent.symbols(prompt)) or []
            else:
                recent_parts = self._acquire("recent_buffer_previews", lambda: self._recent.previews(prompt)) or []
        return format_message(prompt, delta, root=self._root, recent_parts=recent_parts)

    def record_sent(self, snapshot: Snapshot | None = None) -> None:
        """Mark ``snapshot`` (default: the live snapshot) as transmitted."""
        self._session.record_sent(snapshot if snapshot is not None else self._snapshot)

    def recent_buffer_previews(self, prompt: str | None) -> list[MessagePart]:
        if not self._settings.is_enabled("recent_buffers"):
            return []
        return list(self._recent.previews(prompt))

    def recent_buffer_symbols(self, prompt: str | None) -> list[MessagePart]:
        if not self._settings.is_enabled("recent_buffers"):
            return []
        return list(self._recent.symbols(prompt))

    # ------------------------------------------------------------------
    # Editor events
    # ------------------------------------------------------------------
    def buffer_saved(self, bufnr: int, path: str | None = None) -> None:
        self._bus.publish(BufferSavedEvent(bufnr, path=path))

    def buffer_closed(self, bufnr: int, path: str | None = None) -> None:
        self._bus.publish(BufferClosedEvent(bufnr, path=path))


def _nanoseconds(clock: Callable[[], float]) -> Callable[[], int]:
    """Adapt a seconds clock to the TTL cache's integer nanosecond clock."""
    return lambda: round(clock() * 1_000_000_000)
