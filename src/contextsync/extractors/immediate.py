"""Lightweight fields read synchronously from the editor during ``load``."""

from __future__ import annotations

import logging
import os
import re
import textwrap
from typing import Any, Callable

from ..host import EditorHost
from ..privacy import PrivacyFilter
from ..settings import ContextSettings
from ..snapshot import CurrentFile, CursorData, Selection

__all__ = ["ImmediateExtractor", "LIGHTWEIGHT_FIELDS", "surrounding_lines"]

LOGGER = logging.getLogger(__name__)

# Snapshot fields filled after current file, cursor, diagnostics and selection.
LIGHTWEIGHT_FIELDS: tuple[str, ...] = (
    "marks",
    "jumplist",
    "undo_history",
    "windows_tabs",
    "session_info",
    "registers",
    "command_history",
    "search_history",
    "debug_data",
    "fold_info",
    "cursor_surrounding",
    "quickfix_loclist",
    "macros",
    "terminal_buffers",
    "session_duration",
)

_SEVERITY_KEYS = ("error", "warning", "info")
_WHITESPACE = re.compile(r"\s+")


def surrounding_lines(
    host: EditorHost, bufnr: int, line: int, *, above: int, below: int
) -> dict[str, Any] | None:
    """Lines around ``line`` (1-based) clamped to the buffer."""

    info = host.buffer(bufnr)
    if info is None or not info.valid:
        return None
    start_line = max(1, line - above)
    end_line = min(info.line_count, line + below)
    return {
        "lines": list(host.buffer_lines(bufnr, start_line - 1, end_line)),
        "start_line": start_line,
        "end_line": end_line,
        "current_line": line,
    }


class ImmediateExtractor:
    """Reads cheap editor state. Each method returns ``None`` when disabled or empty."""

    def __init__(
        self,
        host: EditorHost,
        settings: ContextSettings,
        privacy: PrivacyFilter,
        *,
        clock: Callable[[], float],
        started_at: float,
    ) -> None:
        self._host = host
        self._settings = settings
        self._privacy = privacy
        self._clock = clock
        self._started_at = started_at

    # ------------------------------------------------------------------
    # Current file, cursor, diagnostics, selection
    # ------------------------------------------------------------------
    def current_buffer_is_file(self) -> bool:
        info = self._host.buffer(self._host.current_buffer())
        if info is None or info.buftype or not info.name:
            return False
        return self._host.file_readable(info.name)

    def current_file(self) -> CurrentFile | None:
        if not self._settings.is_enabled("current_file"):
            return None
        bufnr = self._host.current_buffer()
        info = self._host.buffer(bufnr)
        if info is None or not info.name or not self._host.file_readable(info.name):
            return None
        basename = os.path.basename(info.name)
        clients = [client.name for client in self._host.lsp_clients(bufnr)]
        return CurrentFile(
            path=self._privacy.redact_path(info.name) or info.name,
            name=basename,
            extension=os.path.splitext(basename)[1].lstrip("."),
            filetype=info.filetype or None,
            lsp_clients=clients or None,
        )

    def cursor_data(self) -> CursorData | None:
        if not self._settings.is_enabled("cursor_data"):
            return None
        line, col = self._host.cursor()
        return CursorData(line=line, col=col, line_content=self._host.current_line().strip())

    def linter_errors(self) -> str | None:
        """Summarize diagnostics of the enabled severities in the current buffer."""

        config = self._settings.diagnostics
        if not self._settings.enabled or not config.enabled:
            return None
        severities = [key for key in _SEVERITY_KEYS if getattr(config, key)]
        if not severities:
            return None
        diagnostics = self._host.diagnostics(self._host.current_buffer(), severities)
        if not diagnostics:
            return None
        count = len(diagnostics)
        lines = [f"Found {count} error{'s' if count > 1 else ''}:"]
        for diagnostic in diagnostics:
            message = _WHITESPACE.sub(" ", str(diagnostic.get("message", ""))).strip()
            lines.append(f" Line {int(diagnostic.get('lnum', 0)) + 1}: {message}")
        return "\n".join(lines)

    def selection(self, current_file: CurrentFile | None) -> Selection | None:
        if not self._settings.is_enabled("selection"):
            return None
        raw = self._host.visual_selection()
        if not raw:
            return None
        text = raw.get("text") or ""
        if not text.strip():
            return None
        return Selection(
            file=current_file,
            content=textwrap.dedent(text),
            lines=f"{raw.get('start_line')}, {raw.get('end_line')}",
        )

    # ------------------------------------------------------------------
    # Lightweight fields
    # ------------------------------------------------------------------
    def marks(self) -> list[dict[str, Any]] | None:
        if not self._settings.is_enabled("marks"):
            return None
        result = []
        for mark in list(self._host.marks())[: self._settings.marks.limit]:
            if not mark.get("mark"):
                continue
            result.append(
                {
                    "mark": mark["mark"],
                    "line": mark.get("line"),
                    "col": mark.get("col"),
                    "file": self._privacy.redact_path(mark.get("file")),
                }
            )
        return result or None

    def jumplist(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("jumplist"):
            return None
        entries, current = self._host.jumplist()
        limit = self._settings.jumplist.limit
        jumps = []
        for jump in list(entries)[-limit:] if limit > 0 else []:
            bufnr = jump.get("bufnr")
            if bufnr is None or jump.get("lnum") is None:
                continue
            info = self._host.buffer(bufnr)
            jumps.append(
                {
                    "bufnr": bufnr,
                    "filename": self._privacy.redact_path(info.name if info else ""),
                    "line": jump["lnum"],
                    "col": jump.get("col"),
                }
            )
        return {"jumps": jumps, "current": current} if jumps else None

    def undo_history(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("undo_history"):
            return None
        bufnr = self._host.current_buffer()
        tree = self._host.undotree(bufnr)
        if not tree or not tree.get("entries"):
            return None
        limit = self._settings.undo_history.limit
        entries = [
            {"seq": entry.get("seq"), "time": entry.get("time"), "newhead": entry.get("newhead")}
            for entry in list(tree["entries"])[-limit:]
        ]
        if not entries:
            return None
        info = self._host.buffer(bufnr)
        unsaved = [
            {"bufnr": buffer.bufnr, "name": self._privacy.redact_path(buffer.name)}
            for buffer in self._host.listed_buffers()
            if buffer.changed and buffer.name
        ]
        return {
            "entries": entries,
            "seq_cur": tree.get("seq_cur"),
            "current_buffer_modified": bool(info and info.changed),
            "unsaved_buffers": unsaved or None,
        }

    def windows_tabs(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("windows_tabs"):
            return None
        windows = []
        for window in self._host.windows():
            name = window.get("name") or ""
            if name and not self._privacy.is_in_project(name):
                continue
            windows.append(
                {"id": window.get("id"), "bufnr": window.get("bufnr"), "filename": self._privacy.redact_path(name)}
            )
        tabs = [{"id": tab.get("id"), "windows": list(tab.get("windows") or ())} for tab in self._host.tabs()]
        return {"windows": windows, "tabs": tabs, "current_win": self._host.current_window()}

    def session_info(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("session_info"):
            return None
        name = self._host.session_name()
        if not name:
            return None
        return {"name": self._privacy.redact_path(name), "cwd": str(self._privacy.root)}

    def registers(self) -> dict[str, dict[str, str]] | None:
        if not self._settings.is_enabled("registers"):
            return None
        result: dict[str, dict[str, str]] = {}
        for name in self._settings.registers.include:
            contents, regtype = self._host.register(name)
            if contents:
                result[name] = self._privacy.redact_register(contents, regtype)
        return result or None

    def command_history(self) -> list[str] | None:
        if not self._settings.is_enabled("command_history"):
            return None
        return self._history("cmd", self._settings.command_history.limit)

    def search_history(self) -> list[str] | None:
        if not self._settings.is_enabled("search_history"):
            return None
        return self._history("search", self._settings.search_history.limit)

    def _history(self, kind: str, limit: int) -> list[str] | None:
        entries = [entry for entry in self._host.history(kind, limit) if entry]
        return entries[:limit] or None

    def debug_data(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("debug_data"):
            return None
        session = self._host.debug_session()
        if not session:
            return None
        breakpoints = [
            {
                "file": self._privacy.redact_path(point.get("file")),
                "line": point.get("line"),
                "condition": point.get("condition"),
            }
            for point in session.get("breakpoints") or ()
        ]
        return {"session_active": True, "breakpoints": breakpoints}

    def fold_info(self) -> list[dict[str, Any]] | None:
        if not self._settings.is_enabled("fold_info"):
            return None
        folds = [
            {
                "line": fold.get("line"),
                "level": fold.get("level"),
                "closed": True,
                "closed_start": fold.get("closed_start"),
            }
            for fold in self._host.closed_folds()
            if fold.get("level", 0) > 0
        ]
        return folds or None

    def cursor_surrounding(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("cursor_surrounding"):
            return None
        config = self._settings.cursor_surrounding
        line, _ = self._host.cursor()
        return surrounding_lines(
            self._host,
            self._host.current_buffer(),
            line,
            above=config.lines_above,
            below=config.lines_below,
        )

    def quickfix_loclist(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("quickfix_loclist"):
            return None
        limit = self._settings.quickfix_loclist.limit
        result = {
            "quickfix": [self._list_item(item) for item in list(self._host.quickfix())[:limit]],
            "loclist": [self._list_item(item) for item in list(self._host.loclist())[:limit]],
        }
        return result if result["quickfix"] or result["loclist"] else None

    def _list_item(self, item: Any) -> dict[str, Any]:
        return {
            "filename": self._privacy.redact_path(item.get("filename")),
            "lnum": item.get("lnum"),
            "col": item.get("col"),
            "text": item.get("text"),
            "type": item.get("type"),
        }

    def macros(self) -> dict[str, str] | None:
        if not self._settings.is_enabled("macros"):
            return None
        register = self._settings.macros.register
        contents, _ = self._host.register(register)
        if not contents:
            return None
        return {"register": register, "content": self._privacy.redact_text(contents)}

    def terminal_buffers(self) -> list[dict[str, Any]] | None:
        if not self._settings.is_enabled("terminal_buffers"):
            return None
        ordered = sorted(self._host.listed_buffers(), key=lambda buffer: buffer.lastused, reverse=True)
        for buffer in ordered:
            if buffer.name.startswith("term://"):
                return [
                    {"bufnr": buffer.bufnr, "name": self._privacy.redact_path(buffer.name), "lastused": buffer.lastused}
                ]
        return None

    def session_duration(self) -> dict[str, int] | None:
        if not self._settings.is_enabled("session_duration"):
            return None
        seconds = max(0.0, self._clock() - self._started_at)
        return {
            "duration_seconds": int(seconds),
            "duration_minutes": int(seconds // 60),
            "duration_hours": int(seconds // 3600),
        }
