"""Semantically related code snippets from an optional search backend."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import Any

from ..cache import TTLCache
from ..host import SnippetSearch
from ..privacy import PrivacyFilter
from ..settings import ContextSettings
from ..snapshot import CurrentFile, CursorData

__all__ = ["SemanticSnippets", "build_query", "MAX_QUERY_CHARS"]

LOGGER = logging.getLogger(__name__)

MAX_QUERY_CHARS = 500


def build_query(
    strategy: str,
    current_file: CurrentFile,
    cursor: CursorData | None,
    selection_text: str | None,
) -> str:
    """Compose the search query for ``strategy`` (auto, selection, line or filename).

    ``auto`` prefers the selection, then the cursor line, then the file name.
    The filetype is appended for every strategy except ``selection``.
    """

    selection = selection_text if selection_text and selection_text.strip() else None
    line = cursor.line_content if cursor and cursor.line_content.strip() else None
    by_name = [current_file.name] + ([current_file.filetype] if current_file.filetype else [])

    if strategy == "selection" and selection:
        parts = [selection]
    elif strategy == "line" and line:
        parts = [line]
    elif strategy == "filename":
        parts = list(by_name)
    elif selection:
        parts = [selection]
    elif line:
        parts = [line]
    else:
        parts = list(by_name)

    if current_file.filetype and strategy != "selection" and current_file.filetype not in parts:
        parts.append(current_file.filetype)
    return " ".join(parts)


class SemanticSnippets:
    def __init__(
        self,
        search: SnippetSearch | None,
        cache: TTLCache,
        settings: ContextSettings,
        privacy: PrivacyFilter,
    ) -> None:
        self._search = search
        self._cache = cache
        self._settings = settings
        self._privacy = privacy

    async def collect(
        self,
        current_file: CurrentFile | None,
        cursor: CursorData | None,
        selection_text: str | None = None,
    ) -> list[dict[str, Any]] | None:
        if self._search is None or not self._settings.is_enabled("semantic_snippets"):
            return None
        if current_file is None or not current_file.path:
            return None

        config = self._settings.semantic_snippets
        query = build_query(config.query_strategy, current_file, cursor, selection_text)
        if not query or len(query) > MAX_QUERY_CHARS:
            LOGGER.debug("Semantic query skipped (%d chars)", len(query))
            return None

        digest = hashlib.sha1(query.encode("utf-8")).hexdigest()[:12]
        key = f"semantic_snippets_{digest}"
        entry = self._cache.lookup(key, self._settings.ttl_for("semantic_snippets"))
        if entry is not None:
            return entry.value

        results = await asyncio.to_thread(self._search.query, query, n=config.n)
        snippets = [
            {
                "path": self._privacy.redact_path(item.get("path")),
                "content": self._privacy.redact_text(item.get("document") or ""),
            }
            for item in results or ()
        ]
        value = snippets or None
        self._cache.set(key, value, family="semantic_snippets_")
        return value
