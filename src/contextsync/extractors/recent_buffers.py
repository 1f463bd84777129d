"""Recently used buffers: the snapshot inventory and the attachment parts."""

from __future__ import annotations

import logging
from typing import Any

from ..cache import TTLCache
from ..formatter import display_path
from ..host import BufferInfo, EditorHost
from ..parts import LocationHint, SyntheticTextPart, locate_mention
from ..privacy import PrivacyFilter
from ..settings import ContextSettings
from .immediate import surrounding_lines
from .symbols import flatten_symbols, symbol_names

__all__ = ["RecentBuffers", "LARGE_BUFFER_LINES", "PREVIEW_LINES"]

LOGGER = logging.getLogger(__name__)

LARGE_BUFFER_LINES = 100
PREVIEW_LINES = 200
SYMBOL_TIMEOUT_MS = 1_000


class RecentBuffers:
    """Buffer inventory plus ``recent-buffer`` synthetic parts.

    The inventory is a snapshot field. The parts are built per message from
    large, language-server backed buffers and either preview their first lines
    or list their symbol names.
    """

    def __init__(
        self,
        host: EditorHost,
        cache: TTLCache,
        settings: ContextSettings,
        privacy: PrivacyFilter,
    ) -> None:
        self._host = host
        self._cache = cache
        self._settings = settings
        self._privacy = privacy

    # ------------------------------------------------------------------
    # Snapshot field
    # ------------------------------------------------------------------
    def inventory(self) -> list[dict[str, Any]] | None:
        if not self._settings.is_enabled("recent_buffers"):
            return None
        current = self._host.current_buffer()
        key = f"recent_buffers_{current}_{self._host.buffer_revision(current)}"
        entry = self._cache.lookup(key, self._settings.ttl_for("recent_buffers"))
        if entry is not None:
            return entry.value

        config = self._settings.recent_buffers
        ordered = sorted(self._host.listed_buffers(), key=lambda buffer: buffer.lastused, reverse=True)
        result = [self._inventory_entry(buffer, current) for buffer in ordered[: config.limit]]
        if config.symbols_only:
            for item, buffer in zip(result, ordered):
                symbols = self._entry_symbols(buffer)
                if symbols is not None:
                    item["symbols"] = symbols

        value = result or None
        self._cache.set(key, value, family=f"recent_buffers_{current}_")
        return value

    def _inventory_entry(self, buffer: BufferInfo, current: int) -> dict[str, Any]:
        item: dict[str, Any] = {
            "bufnr": buffer.bufnr,
            "name": self._privacy.redact_path(buffer.name),
            "lastused": buffer.lastused,
            "changed": buffer.changed,
        }
        if not buffer.valid:
            return item
        if buffer.filetype:
            item["filetype"] = buffer.filetype
        clients = [client.name for client in self._host.lsp_clients(buffer.bufnr)]
        if clients:
            item["lsp_clients"] = clients
        if buffer.bufnr == current:
            line, _ = self._host.cursor()
            config = self._settings.cursor_surrounding
            item["cursor_surrounding"] = surrounding_lines(
                self._host, buffer.bufnr, line, above=config.lines_above, below=config.lines_below
            )
        return item

    def _entry_symbols(self, buffer: BufferInfo) -> list[dict[str, Any]] | None:
        if not buffer.valid or buffer.line_count <= LARGE_BUFFER_LINES:
            return None
        if buffer.readonly or buffer.buftype:
            return None
        if not self._host.lsp_clients(buffer.bufnr):
            return None

        key = f"lsp_symbols_{buffer.bufnr}_{self._host.buffer_revision(buffer.bufnr)}"
        cached = self._cache.get(key, self._settings.ttl_for("lsp_symbols"))
        if cached is not None:
            return cached
        raw = self._host.document_symbols(buffer.bufnr, SYMBOL_TIMEOUT_MS)
        if raw is None:
            return None
        symbols = flatten_symbols(raw, limit=self._settings.lsp_context.symbols_limit)
        self._cache.set(key, symbols, family=f"lsp_symbols_{buffer.bufnr}_")
        return symbols

    # ------------------------------------------------------------------
    # Attachment parts
    # ------------------------------------------------------------------
    def candidates(self) -> list[BufferInfo]:
        """Large normal buffers with a language server, highest number first."""

        found = [
            buffer
            for buffer in self._host.listed_buffers()
            if buffer.is_normal
            and buffer.line_count > LARGE_BUFFER_LINES
            and self._host.lsp_clients(buffer.bufnr)
        ]
        found.sort(key=lambda buffer: buffer.bufnr, reverse=True)
        return found[: max(1, self._settings.recent_buffers.max_parts)]

    def previews(self, prompt: str | None) -> list[SyntheticTextPart]:
        parts = []
        for buffer in self.candidates():
            shown = min(PREVIEW_LINES, buffer.line_count)
            body = "\n".join(self._host.buffer_lines(buffer.bufnr, 0, shown))
            parts.append(self._part(buffer, prompt, {"preview": f"```\n{body}\n```"}))
        return parts

    def symbols(self, prompt: str | None) -> list[SyntheticTextPart]:
        parts = []
        for buffer in self.candidates():
            names: list[str] = []
            if any(client.supports_symbols for client in self._host.lsp_clients(buffer.bufnr)):
                names = symbol_names(self._host.document_symbols(buffer.bufnr, SYMBOL_TIMEOUT_MS))
            parts.append(self._part(buffer, prompt, {"symbols": names}))
        return parts

    def _part(self, buffer: BufferInfo, prompt: str | None, extra: dict[str, Any]) -> SyntheticTextPart:
        path = self._privacy.redact_path(buffer.name) or buffer.name
        relative = display_path(path, self._privacy.root)
        hint = locate_mention(prompt, "@" + relative, inclusive_end=True)
        payload = {"path": path, "relative": relative, "line_count": buffer.line_count, **extra}
        return SyntheticTextPart(
            context_type="recent-buffer",
            payload=payload,
            location=LocationHint(value=hint.value, start=hint.start, end=hint.end, path=path),
        )
