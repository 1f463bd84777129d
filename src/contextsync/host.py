"""Capabilities the engine consumes from the host editor and its plugins.

Implementations live in the editor integration; the engine only depends on
these protocols. Any method may raise
:class:`~contextsync.errors.CapabilityUnavailableError` when the underlying
feature (debugger, language server, ...) is missing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

__all__ = [
    "BufferInfo",
    "LspClient",
    "EditorHost",
    "SnippetSearch",
    "Notifier",
]


@dataclass(slots=True, frozen=True)
class BufferInfo:
    """Raw buffer metadata as reported by the editor."""

    bufnr: int
    name: str = ""
    filetype: str = ""
    line_count: int = 0
    lastused: int = 0
    changed: bool = False
    buftype: str = ""
    modifiable: bool = True
    readonly: bool = False
    valid: bool = True
    listed: bool = True

    @property
    def is_normal(self) -> bool:
        return self.valid and self.buftype == "" and self.modifiable


@dataclass(slots=True, frozen=True)
class LspClient:
    name: str
    id: int = 0
    root_dir: str | None = None
    supports_symbols: bool = False


@runtime_checkable
class Notifier(Protocol):
    def notify(self, message: str) -> None:
        ...


class EditorHost(Notifier, Protocol):
    """Raw editor introspection. Line numbers are 1-based unless noted."""

    # Buffers -----------------------------------------------------------
    def current_buffer(self) -> int:
        ...

    def buffer(self, bufnr: int) -> BufferInfo | None:
        ...

    def listed_buffers(self) -> Sequence[BufferInfo]:
        ...

    def buffer_revision(self, bufnr: int) -> int:
        """Monotonic per-buffer mutation counter."""
        ...

    def buffer_lines(self, bufnr: int, start: int, end: int) -> Sequence[str]:
        """Lines ``start``..``end`` as a 0-based, end-exclusive slice."""
        ...

    # Files -------------------------------------------------------------
    def file_readable(self, path: str) -> bool:
        ...

    def read_file(self, path: str) -> str:
        ...

    def plugin_manifest_path(self) -> str | None:
        ...

    # Cursor, selection, diagnostics ------------------------------------
    def cursor(self) -> tuple[int, int]:
        ...

    def current_line(self) -> str:
        ...

    def visual_selection(self) -> Mapping[str, Any] | None:
        """``{"text", "start_line", "end_line"}`` while in a visual mode."""
        ...

    def diagnostics(self, bufnr: int, severities: Sequence[str] | None = None) -> Sequence[Mapping[str, Any]]:
        ...

    # Language servers --------------------------------------------------
    def lsp_clients(self, bufnr: int) -> Sequence[LspClient]:
        ...

    def document_symbols(self, bufnr: int, timeout_ms: int) -> Sequence[Mapping[str, Any]] | None:
        ...

    # Navigation and layout ---------------------------------------------
    def marks(self) -> Sequence[Mapping[str, Any]]:
        ...

    def jumplist(self) -> tuple[Sequence[Mapping[str, Any]], int]:
        ...

    def undotree(self, bufnr: int) -> Mapping[str, Any] | None:
        ...

    def windows(self) -> Sequence[Mapping[str, Any]]:
        ...

    def tabs(self) -> Sequence[Mapping[str, Any]]:
        ...

    def current_window(self) -> int:
        ...

    def closed_folds(self) -> Sequence[Mapping[str, Any]]:
        ...

    def matches(self) -> Sequence[Mapping[str, Any]]:
        ...

    def extmarks(self, bufnr: int) -> Sequence[Mapping[str, Any]]:
        ...

    # Session, registers, history ---------------------------------------
    def session_name(self) -> str | None:
        ...

    def register(self, name: str) -> tuple[str, str]:
        """Register contents and register type."""
        ...

    def history(self, kind: str, limit: int) -> Sequence[str]:
        """Most recent ``limit`` entries of ``cmd`` or ``search`` history, newest first."""
        ...

    def debug_session(self) -> Mapping[str, Any] | None:
        ...

    def quickfix(self) -> Sequence[Mapping[str, Any]]:
        ...

    def loclist(self) -> Sequence[Mapping[str, Any]]:
        ...


@runtime_checkable
class SnippetSearch(Protocol):
    """Semantic code search used for snippet retrieval."""

    def query(self, text: str, *, n: int) -> Sequence[Mapping[str, Any]]:
        """Return up to ``n`` results with ``path`` and ``document`` keys."""
        ...
