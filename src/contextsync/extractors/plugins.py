"""Installed plugin inventory read from the plugin manager's lock manifest."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from jsonschema import Draft202012Validator

from ..cache import TTLCache
from ..errors import MalformedDataError
from ..host import EditorHost
from ..settings import ContextSettings

__all__ = ["PluginInventory", "parse_manifest", "MANIFEST_SCHEMA"]

LOGGER = logging.getLogger(__name__)

CACHE_FAMILY = "plugin_versions"
MAX_SCHEMA_ERRORS = 5

_PACKAGE_ENTRY = {
    "type": "object",
    "properties": {
        "version": {"type": "string"},
        "commit": {"type": "string"},
        "branch": {"type": "string"},
    },
}
# Either ``{"packages": {name: entry}}`` or the flat ``{name: entry}`` lock layout.
MANIFEST_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "anyOf": [
        {
            "required": ["packages"],
            "properties": {"packages": {"type": "object", "additionalProperties": _PACKAGE_ENTRY}},
        },
        {"not": {"required": ["packages"]}, "additionalProperties": _PACKAGE_ENTRY},
    ],
}
_VALIDATOR = Draft202012Validator(MANIFEST_SCHEMA)


def parse_manifest(text: str, *, limit: int) -> list[dict[str, str]] | None:
    """Parse lock manifest text into at most ``limit`` plugin records.

    Raises:
        MalformedDataError: The text is not JSON or does not match the schema.
    """

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedDataError(f"Invalid plugin manifest: {exc}", field=CACHE_FAMILY) from exc

    problems = []
    for issue in _VALIDATOR.iter_errors(data):
        path = ".".join(str(part) for part in issue.absolute_path)
        problems.append(f"{path}: {issue.message}" if path else issue.message)
        if len(problems) >= MAX_SCHEMA_ERRORS:
            break
    if problems:
        raise MalformedDataError("; ".join(problems), field=CACHE_FAMILY)

    packages = data["packages"] if "packages" in data else data
    records = []
    for name in sorted(packages)[: max(0, limit)]:
        info = packages[name] or {}
        commit = info.get("commit")
        records.append(
            {
                "name": name,
                "version": info.get("version") or "unknown",
                "commit": commit[:8] if commit else "none",
            }
        )
    return records or None


class PluginInventory:
    """Reads the manifest off the event loop and caches it per modification time."""

    def __init__(self, host: EditorHost, cache: TTLCache, settings: ContextSettings) -> None:
        self._host = host
        self._cache = cache
        self._settings = settings

    def manifest_path(self) -> Path | None:
        configured = self._settings.plugin_versions.manifest_path or self._host.plugin_manifest_path()
        return Path(configured).expanduser() if configured else None

    async def collect(self) -> list[dict[str, str]] | None:
        if not self._settings.is_enabled("plugin_versions"):
            return None
        path = self.manifest_path()
        if path is None or not path.is_file():
            return None

        try:
            mtime = path.stat().st_mtime_ns
        except OSError as exc:
            raise MalformedDataError(f"Cannot stat {path}: {exc}", field=CACHE_FAMILY) from exc

        key = f"{CACHE_FAMILY}_{mtime}"
        entry = self._cache.lookup(key, self._settings.ttl_for(CACHE_FAMILY))
        if entry is not None:
            return entry.value

        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MalformedDataError(f"Cannot read {path}: {exc}", field=CACHE_FAMILY) from exc

        records = parse_manifest(text, limit=self._settings.plugin_versions.limit)
        self._cache.set(key, records, family=f"{CACHE_FAMILY}_")
        LOGGER.debug("Loaded %d plugin records from %s", len(records or ()), path)
        return records
