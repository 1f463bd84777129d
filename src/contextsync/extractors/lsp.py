"""Language server context and buffer highlights, cached per buffer revision."""

from __future__ import annotations

import logging
from typing import Any

from ..cache import TTLCache
from ..host import EditorHost
from ..privacy import PrivacyFilter
from ..settings import ContextSettings
from .symbols import flatten_symbols

__all__ = ["LspContext", "Highlights"]

LOGGER = logging.getLogger(__name__)

SYMBOL_TIMEOUT_MS = 1_000


def _revision_key(family: str, host: EditorHost, bufnr: int) -> tuple[str, str]:
    return f"{family}_{bufnr}_{host.buffer_revision(bufnr)}", f"{family}_{bufnr}_"


class LspContext:
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

    def collect(self) -> dict[str, Any] | None:
        if not self._settings.is_enabled("lsp_context"):
            return None
        bufnr = self._host.current_buffer()
        key, family = _revision_key("lsp_context", self._host, bufnr)
        entry = self._cache.lookup(key, self._settings.ttl_for("lsp_context"))
        if entry is not None:
            return entry.value

        value = self._build(bufnr)
        self._cache.set(key, value, family=family)
        return value

    def _build(self, bufnr: int) -> dict[str, Any] | None:
        config = self._settings.lsp_context
        result: dict[str, Any] = {
            "diagnostics": [
                {
                    "line": diagnostic.get("lnum"),
                    "col": diagnostic.get("col"),
                    "severity": diagnostic.get("severity"),
                    "message": diagnostic.get("message"),
                    "source": diagnostic.get("source"),
                    "code": diagnostic.get("code"),
                    "user_data": repr(diagnostic.get("user_data")),
                }
                for diagnostic in list(self._host.diagnostics(bufnr))[: config.diagnostics_limit]
            ]
        }

        if config.code_actions:
            clients = self._host.lsp_clients(bufnr)
            result["code_actions_available"] = bool(clients)
            if clients:
                result["lsp_clients"] = [
                    {
                        "name": client.name,
                        "id": client.id,
                        "root_dir": self._privacy.redact_path(client.root_dir),
                    }
                    for client in clients
                ]

        raw = self._host.document_symbols(bufnr, SYMBOL_TIMEOUT_MS)
        if raw is not None:
            result["symbols"] = flatten_symbols(raw, limit=config.symbols_limit)

        if result["diagnostics"] or result.get("code_actions_available") or result.get("symbols"):
            return result
        return None


class Highlights:
    """Window matches plus buffer extmarks carrying a highlight group."""

    def __init__(self, host: EditorHost, cache: TTLCache, settings: ContextSettings) -> None:
        self._host = host
        self._cache = cache
        self._settings = settings

    def collect(self) -> list[dict[str, Any]] | None:
        if not self._settings.is_enabled("highlights"):
            return None
        bufnr = self._host.current_buffer()
        key, family = _revision_key("highlights", self._host, bufnr)
        entry = self._cache.lookup(key, self._settings.ttl_for("highlights"))
        if entry is not None:
            return entry.value

        result: list[dict[str, Any]] = [
            {"group": match.get("group"), "pattern": match.get("pattern"), "priority": match.get("priority")}
            for match in self._host.matches()
        ]
        result.extend(
            {"id": mark.get("id"), "line": mark.get("line"), "col": mark.get("col"), "hl_group": mark["hl_group"]}
            for mark in self._host.extmarks(bufnr)
            if mark.get("hl_group")
        )
        value = result or None
        self._cache.set(key, value, family=family)
        return value
