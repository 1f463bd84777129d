"""Shared test helpers and stub classes.

Import from here instead of duplicating fakes in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from contextsync.errors import CapabilityUnavailableError
from contextsync.host import BufferInfo, LspClient
from contextsync.runner import ProcessOutput


class ManualClock:
    """Monotonic clock advanced explicitly by tests.

    Calling it reads seconds; ``ns`` reads the same instant in integer
    nanoseconds for the TTL cache.
    """

    def __init__(self, start: float = 1_000.0) -> None:
        self._ns = round(start * 1_000_000_000)

    def __call__(self) -> float:
        return self._ns / 1_000_000_000

    def ns(self) -> int:
        return self._ns

    def advance_ms(self, milliseconds: float) -> None:
        self._ns += round(milliseconds * 1_000_000)


@dataclass
class FakeHost:
    """In-memory editor used by the context tests.

    Buffers are keyed by number; ``lines`` holds buffer contents. Set
    ``debugger_missing`` to simulate an absent debugger plugin.
    """

    current: int = 1
    buffers: dict[int, BufferInfo] = field(default_factory=dict)
    lines: dict[int, list[str]] = field(default_factory=dict)
    revisions: dict[int, int] = field(default_factory=dict)
    clients: dict[int, list[LspClient]] = field(default_factory=dict)
    symbols: dict[int, list[Mapping[str, Any]]] = field(default_factory=dict)
    readable: set[str] = field(default_factory=set)
    files: dict[str, str] = field(default_factory=dict)
    manifest_path: str | None = None
    cursor_pos: tuple[int, int] = (1, 1)
    selection: Mapping[str, Any] | None = None
    diagnostic_items: list[Mapping[str, Any]] = field(default_factory=list)
    mark_items: list[Mapping[str, Any]] = field(default_factory=list)
    jump_items: list[Mapping[str, Any]] = field(default_factory=list)
    jump_index: int = 0
    undo: Mapping[str, Any] | None = None
    window_items: list[Mapping[str, Any]] = field(default_factory=list)
    tab_items: list[Mapping[str, Any]] = field(default_factory=list)
    fold_items: list[Mapping[str, Any]] = field(default_factory=list)
    match_items: list[Mapping[str, Any]] = field(default_factory=list)
    extmark_items: list[Mapping[str, Any]] = field(default_factory=list)
    session: str | None = None
    registers: dict[str, tuple[str, str]] = field(default_factory=dict)
    histories: dict[str, list[str]] = field(default_factory=dict)
    debugger_missing: bool = False
    debug: Mapping[str, Any] | None = None
    quickfix_items: list[Mapping[str, Any]] = field(default_factory=list)
    loclist_items: list[Mapping[str, Any]] = field(default_factory=list)
    notifications: list[str] = field(default_factory=list)
    calls: dict[str, int] = field(default_factory=dict)

    def open(
        self,
        bufnr: int,
        name: str,
        lines: Sequence[str] = ("",),
        *,
        filetype: str = "",
        lastused: int = 0,
        clients: Sequence[LspClient] = (),
        **extra: Any,
    ) -> BufferInfo:
        info = BufferInfo(
            bufnr=bufnr,
            name=name,
            filetype=filetype,
            line_count=len(lines),
            lastused=lastused,
            **extra,
        )
        self.buffers[bufnr] = info
        self.lines[bufnr] = list(lines)
        self.revisions.setdefault(bufnr, 1)
        if clients:
            self.clients[bufnr] = list(clients)
        if name and not name.startswith("term://"):
            self.readable.add(name)
        return info

    def edit(self, bufnr: int) -> None:
        self.revisions[bufnr] = self.revisions.get(bufnr, 0) + 1

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    # Buffers
    def current_buffer(self) -> int:
        return self.current

    def buffer(self, bufnr: int) -> BufferInfo | None:
        return self.buffers.get(bufnr)

    def listed_buffers(self) -> Sequence[BufferInfo]:
        return [info for info in self.buffers.values() if info.listed]

    def buffer_revision(self, bufnr: int) -> int:
        return self.revisions.get(bufnr, 0)

    def buffer_lines(self, bufnr: int, start: int, end: int) -> Sequence[str]:
        return self.lines.get(bufnr, [])[start:end]

    # Files
    def file_readable(self, path: str) -> bool:
        return path in self.readable

    def read_file(self, path: str) -> str:
        return self.files[path]

    def plugin_manifest_path(self) -> str | None:
        return self.manifest_path

    def notify(self, message: str) -> None:
        self.notifications.append(message)

    # Cursor, selection, diagnostics
    def cursor(self) -> tuple[int, int]:
        return self.cursor_pos

    def current_line(self) -> str:
        line = self.cursor_pos[0]
        contents = self.lines.get(self.current, [])
        return contents[line - 1] if 0 < line <= len(contents) else ""

    def visual_selection(self) -> Mapping[str, Any] | None:
        return self.selection

    def diagnostics(self, bufnr: int, severities: Sequence[str] | None = None) -> Sequence[Mapping[str, Any]]:
        self._count("diagnostics")
        if severities is None:
            return list(self.diagnostic_items)
        return [item for item in self.diagnostic_items if item.get("severity", "error") in severities]

    # Language servers
    def lsp_clients(self, bufnr: int) -> Sequence[LspClient]:
        return self.clients.get(bufnr, [])

    def document_symbols(self, bufnr: int, timeout_ms: int) -> Sequence[Mapping[str, Any]] | None:
        self._count("document_symbols")
        return self.symbols.get(bufnr)

    # Navigation and layout
    def marks(self) -> Sequence[Mapping[str, Any]]:
        return self.mark_items

    def jumplist(self) -> tuple[Sequence[Mapping[str, Any]], int]:
        return self.jump_items, self.jump_index

    def undotree(self, bufnr: int) -> Mapping[str, Any] | None:
        return self.undo

    def windows(self) -> Sequence[Mapping[str, Any]]:
        return self.window_items

    def tabs(self) -> Sequence[Mapping[str, Any]]:
        return self.tab_items

    def current_window(self) -> int:
        return 1000

    def closed_folds(self) -> Sequence[Mapping[str, Any]]:
        return self.fold_items

    def matches(self) -> Sequence[Mapping[str, Any]]:
        self._count("matches")
        return self.match_items

    def extmarks(self, bufnr: int) -> Sequence[Mapping[str, Any]]:
        return self.extmark_items

    # Session, registers, history
    def session_name(self) -> str | None:
        return self.session

    def register(self, name: str) -> tuple[str, str]:
        return self.registers.get(name, ("", ""))

    def history(self, kind: str, limit: int) -> Sequence[str]:
        return self.histories.get(kind, [])[:limit]

    def debug_session(self) -> Mapping[str, Any] | None:
        if self.debugger_missing:
            raise CapabilityUnavailableError("debugger plugin not installed", field="debug_data")
        return self.debug

    def quickfix(self) -> Sequence[Mapping[str, Any]]:
        return self.quickfix_items

    def loclist(self) -> Sequence[Mapping[str, Any]]:
        return self.loclist_items


@dataclass
class ScriptedCommand:
    stdout: str = ""
    returncode: int = 0
    delay: float = 0.0
    error: Exception | None = None


class FakeSpawner:
    """Process spawner returning scripted output keyed by the command's words."""

    def __init__(self, script: Mapping[tuple[str, ...], ScriptedCommand] | None = None) -> None:
        self.script = dict(script or {})
        self.started: list[tuple[str, ...]] = []
        self.finished: list[tuple[str, ...]] = []
        self.cwds: list[Path | None] = []

    def on(self, *command: str, **kwargs: Any) -> "FakeSpawner":
        self.script[tuple(command)] = ScriptedCommand(**kwargs)
        return self

    async def run(self, command: Sequence[str], *, cwd: Path | None = None) -> ProcessOutput:
        key = tuple(command)
        self.started.append(key)
        self.cwds.append(cwd)
        scripted = self.script.get(key)
        if scripted is None:
            return ProcessOutput(stdout="", returncode=127)
        if scripted.delay:
            await asyncio.sleep(scripted.delay)
        self.finished.append(key)
        if scripted.error is not None:
            raise scripted.error
        return ProcessOutput(stdout=scripted.stdout, returncode=scripted.returncode)


class FakeSnippetSearch:
    def __init__(self, results: Sequence[Mapping[str, Any]] = ()) -> None:
        self.results = list(results)
        self.queries: list[tuple[str, int]] = []

    def query(self, text: str, *, n: int) -> Sequence[Mapping[str, Any]]:
        self.queries.append((text, n))
        return self.results[:n]
