"""Snapshot model: every context field acquired at one point in time."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Iterator

__all__ = [
    "Snapshot",
    "CurrentFile",
    "CursorData",
    "Selection",
    "SessionState",
    "SNAPSHOT_FIELDS",
    "ATTACHMENT_FIELDS",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CurrentFile:
    """Identity of the file in the active buffer (path already privacy filtered)."""

    path: str
    name: str
    extension: str = ""
    filetype: str | None = None
    lsp_clients: list[str] | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"path": self.path, "name": self.name, "extension": self.extension}
        if self.filetype:
            payload["filetype"] = self.filetype
        if self.lsp_clients:
            payload["lsp_clients"] = list(self.lsp_clients)
        return payload


@dataclass(slots=True)
class CursorData:
    line: int
    col: int
    line_content: str = ""

    def as_payload(self) -> dict[str, Any]:
        return {"line": self.line, "col": self.col, "line_content": self.line_content}


@dataclass(slots=True)
class Selection:
    """A captured block of text and the line span it came from."""

    file: CurrentFile | None
    content: str
    lines: str

    @property
    def language(self) -> str:
        return self.file.extension if self.file is not None else ""

    def as_payload(self) -> dict[str, Any]:
        return {
            "file": self.file.as_payload() if self.file is not None else None,
            "content": self.content,
            "lines": self.lines,
        }


@dataclass(slots=True)
class Snapshot:
    """Mutable aggregate of context fields.

    ``None`` means absent (disabled, no data, or not computed yet) and is
    distinct from an empty collection. The list-valued attachment fields are
    append-only and deduplicated by value.
    """

    current_file: CurrentFile | None = None
    cursor_data: CursorData | None = None
    selections: list[Selection] | None = None
    linter_errors: str | None = None
    marks: list[dict[str, Any]] | None = None
    jumplist: dict[str, Any] | None = None
    recent_buffers: list[dict[str, Any]] | None = None
    undo_history: dict[str, Any] | None = None
    windows_tabs: dict[str, Any] | None = None
    highlights: list[dict[str, Any]] | None = None
    session_info: dict[str, Any] | None = None
    registers: dict[str, dict[str, str]] | None = None
    command_history: list[str] | None = None
    search_history: list[str] | None = None
    debug_data: dict[str, Any] | None = None
    lsp_context: dict[str, Any] | None = None
    plugin_versions: list[dict[str, str]] | None = None
    git_info: dict[str, Any] | None = None
    fold_info: list[dict[str, Any]] | None = None
    cursor_surrounding: dict[str, Any] | None = None
    quickfix_loclist: dict[str, Any] | None = None
    macros: dict[str, str] | None = None
    terminal_buffers: list[dict[str, Any]] | None = None
    session_duration: dict[str, int] | None = None
    semantic_snippets: list[dict[str, str]] | None = None
    mentioned_files: list[str] | None = None
    mentioned_files_content: dict[str, str] | None = None
    mentioned_subagents: list[str] | None = None

    def copy(self) -> "Snapshot":
        """Return a deep value copy; later mutation of either side is isolated."""
        return copy.deepcopy(self)

    def present(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(name, value)`` for every field that is not absent."""
        for spec in fields(self):
            value = getattr(self, spec.name)
            if value is not None:
                yield spec.name, value

    def is_empty(self) -> bool:
        return next(self.present(), None) is None

    def add_selection(self, selection: Selection) -> bool:
        if self.selections is None:
            self.selections = []
        if selection in self.selections:
            return False
        self.selections.append(selection)
        return True

    def add_file(self, path: str) -> bool:
        if self.mentioned_files is None:
            self.mentioned_files = []
        if path in self.mentioned_files:
            return False
        self.mentioned_files.append(path)
        return True

    def add_subagent(self, name: str) -> bool:
        if self.mentioned_subagents is None:
            self.mentioned_subagents = []
        if name in self.mentioned_subagents:
            return False
        self.mentioned_subagents.append(name)
        return True

    def clear_files(self) -> None:
        self.mentioned_files = None
        self.mentioned_files_content = None

    def clear_subagents(self) -> None:
        self.mentioned_subagents = None

    def unload_attachments(self) -> None:
        """Reset every field except current file, cursor and subagents."""
        for name in ATTACHMENT_FIELDS:
            setattr(self, name, None)


SNAPSHOT_FIELDS: tuple[str, ...] = tuple(spec.name for spec in fields(Snapshot))
ATTACHMENT_FIELDS: tuple[str, ...] = tuple(
    name
    for name in SNAPSHOT_FIELDS
    if name not in ("current_file", "cursor_data", "mentioned_subagents")
)


@dataclass(slots=True)
class SessionState:
    """Process-wide transmission state: the last snapshot actually sent."""

    last_sent: Snapshot | None = None
    sent_count: int = field(default=0)

    def record_sent(self, snapshot: Snapshot) -> None:
        """Remember ``snapshot`` as transmitted. A copy is stored, never an alias."""
        self.last_sent = snapshot.copy()
        self.sent_count += 1
        LOGGER.debug("Recorded transmitted snapshot #%d", self.sent_count)

    def reset(self) -> None:
        self.last_sent = None
        self.sent_count = 0
