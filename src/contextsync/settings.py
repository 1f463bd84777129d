"""Context settings dataclasses and JSON persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

__all__ = [
    "ContextSettings",
    "SettingsStore",
    "FieldSettings",
    "DiagnosticsSettings",
    "RegistersSettings",
    "CursorSurroundingSettings",
    "GitSettings",
    "PluginVersionsSettings",
    "RecentBuffersSettings",
    "LspContextSettings",
    "SemanticSnippetsSettings",
    "MacrosSettings",
    "MentionedFilesContentSettings",
    "DeltaSettings",
    "PrivacySettings",
    "CacheSettings",
    "LoggingSettings",
    "DEFAULT_TTL_MS",
    "HEAVY_FIELD_TTLS_MS",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".contextsync"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_TRUE_VALUES = {"1", "true", "yes", "on"}
_BOOL_ENV_OVERRIDES: Mapping[str, tuple[str, ...]] = {
    "CONTEXTSYNC_ENABLED": ("enabled",),
    "CONTEXTSYNC_DELTA": ("delta", "enabled"),
    "CONTEXTSYNC_PRIVACY_FILTER": ("privacy", "privacy_filter"),
    "CONTEXTSYNC_SECRET_FILTER": ("privacy", "secret_filter"),
}
_INT_ENV_OVERRIDES: Mapping[str, tuple[str, ...]] = {
    "CONTEXTSYNC_DEBOUNCE_MS": ("debounce_ms",),
}
_STR_ENV_OVERRIDES: Mapping[str, tuple[str, ...]] = {
    "CONTEXTSYNC_PROJECT_ROOT": ("project_root",),
}

DEFAULT_TTL_MS = 500
# Shelled-out or LSP-backed fields are far costlier than local introspection.
HEAVY_FIELD_TTLS_MS: Mapping[str, int] = {
    "git_info": 10_000,
    "lsp_context": 5_000,
    "plugin_versions": 60_000,
    "semantic_snippets": 30_000,
    "recent_buffers": 5_000,
    "highlights": 5_000,
    "lsp_symbols": 10_000,
}

QueryStrategy = Literal["auto", "selection", "line", "filename"]


@dataclass(slots=True)
class FieldSettings:
    """Toggle and size limit shared by most snapshot fields."""

    enabled: bool = False
    limit: int = 10


@dataclass(slots=True)
class DiagnosticsSettings:
    """Severities folded into the linter summary."""

    enabled: bool = True
    error: bool = True
    warning: bool = True
    info: bool = False


@dataclass(slots=True)
class RegistersSettings:
    enabled: bool = False
    include: list[str] = field(default_factory=lambda: ['"', "/", "q"])


@dataclass(slots=True)
class CursorSurroundingSettings:
    enabled: bool = False
    lines_above: int = 3
    lines_below: int = 3


@dataclass(slots=True)
class GitSettings:
    """Version control summary options."""

    enabled: bool = False
    changes_limit: int = 5
    diff_limit: int = 10
    timeout_ms: int = 5_000


@dataclass(slots=True)
class PluginVersionsSettings:
    enabled: bool = False
    limit: int = 20
    manifest_path: str | None = None


@dataclass(slots=True)
class RecentBuffersSettings:
    """Recent buffer inventory plus the optional attachment parts."""

    enabled: bool = False
    limit: int = 10
    symbols_only: bool = False
    max_parts: int = 5
    attach_parts: bool = True


@dataclass(slots=True)
class LspContextSettings:
    enabled: bool = False
    diagnostics_limit: int = 10
    code_actions: bool = True
    symbols_limit: int = 20


@dataclass(slots=True)
class SemanticSnippetsSettings:
    enabled: bool = False
    query_strategy: QueryStrategy = "auto"
    n: int = 3


@dataclass(slots=True)
class MacrosSettings:
    enabled: bool = False
    register: str = "q"


@dataclass(slots=True)
class MentionedFilesContentSettings:
    enabled: bool = False
    max_bytes: int = 64_000


@dataclass(slots=True)
class DeltaSettings:
    enabled: bool = True


@dataclass(slots=True)
class PrivacySettings:
    privacy_filter: bool = True
    secret_filter: bool = True


@dataclass(slots=True)
class CacheSettings:
    """Bounds and per-field TTL overrides (milliseconds) for the TTL cache."""

    max_entries: int = 512
    default_ttl_ms: int = DEFAULT_TTL_MS
    ttl: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class LoggingSettings:
    level: str = "INFO"
    debug: bool = False
    console: bool = False
    log_dir: str | None = None


@dataclass(slots=True)
class ContextSettings:
    """User-configurable context acquisition settings."""

    enabled: bool = True
    debounce_ms: int = 500
    project_root: str | None = None
    delta: DeltaSettings = field(default_factory=DeltaSettings)
    privacy: PrivacySettings = field(default_factory=PrivacySettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    current_file: FieldSettings = field(default_factory=lambda: FieldSettings(enabled=True))
    cursor_data: FieldSettings = field(default_factory=lambda: FieldSettings(enabled=True))
    selection: FieldSettings = field(default_factory=lambda: FieldSettings(enabled=True))
    diagnostics: DiagnosticsSettings = field(default_factory=DiagnosticsSettings)
    marks: FieldSettings = field(default_factory=FieldSettings)
    jumplist: FieldSettings = field(default_factory=FieldSettings)
    recent_buffers: RecentBuffersSettings = field(default_factory=RecentBuffersSettings)
    undo_history: FieldSettings = field(default_factory=FieldSettings)
    windows_tabs: FieldSettings = field(default_factory=FieldSettings)
    highlights: FieldSettings = field(default_factory=FieldSettings)
    session_info: FieldSettings = field(default_factory=FieldSettings)
    registers: RegistersSettings = field(default_factory=RegistersSettings)
    command_history: FieldSettings = field(default_factory=lambda: FieldSettings(limit=5))
    search_history: FieldSettings = field(default_factory=lambda: FieldSettings(limit=5))
    debug_data: FieldSettings = field(default_factory=FieldSettings)
    lsp_context: LspContextSettings = field(default_factory=LspContextSettings)
    plugin_versions: PluginVersionsSettings = field(default_factory=PluginVersionsSettings)
    git_info: GitSettings = field(default_factory=GitSettings)
    fold_info: FieldSettings = field(default_factory=FieldSettings)
    cursor_surrounding: CursorSurroundingSettings = field(default_factory=CursorSurroundingSettings)
    quickfix_loclist: FieldSettings = field(default_factory=lambda: FieldSettings(limit=5))
    macros: MacrosSettings = field(default_factory=MacrosSettings)
    terminal_buffers: FieldSettings = field(default_factory=FieldSettings)
    session_duration: FieldSettings = field(default_factory=FieldSettings)
    semantic_snippets: SemanticSnippetsSettings = field(default_factory=SemanticSnippetsSettings)
    mentioned_files_content: MentionedFilesContentSettings = field(
        default_factory=MentionedFilesContentSettings
    )

    def is_enabled(self, name: str) -> bool:
        """Return whether context is on and the named field is switched on."""

        if not self.enabled:
            return False
        section = getattr(self, name, None)
        return bool(getattr(section, "enabled", False))

    def ttl_for(self, name: str, default: int | None = None) -> int:
        """Resolve the cache TTL in milliseconds for ``name``."""

        override = self.cache.ttl.get(name)
        if override is not None:
            return int(override)
        heavy = HEAVY_FIELD_TTLS_MS.get(name)
        if heavy is not None:
            return heavy
        if default is not None:
            return default
        return self.cache.default_ttl_ms

    def resolve_root(self) -> Path:
        return Path(self.project_root or os.getcwd()).expanduser().resolve()

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ContextSettings":
        """Build settings from a JSON-like mapping, ignoring unknown keys."""

        if not payload:
            return cls()
        return _build_dataclass(cls, payload)

    def to_mapping(self) -> Dict[str, Any]:
        return asdict(self)


class SettingsStore:
    """Persistence adapter for :class:`ContextSettings`."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> ContextSettings:
        """Load settings from disk, applying runtime and environment overrides."""

        payload = self._read_payload()
        payload.pop("version", None)
        settings = ContextSettings.from_mapping(payload)
        LOGGER.debug("Context settings loaded from %s (enabled=%s)", self._path, settings.enabled)
        if overrides:
            settings = _apply_overrides(settings, overrides, source="runtime")
        return _apply_env_overrides(settings)

    def save(self, settings: ContextSettings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = settings.to_mapping()
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Context settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return data


def _build_dataclass(cls: type, payload: Mapping[str, Any], defaults: Any = None) -> Any:
    defaults = defaults if defaults is not None else cls()
    updates: Dict[str, Any] = {}
    for spec in fields(cls):
        if spec.name not in payload:
            continue
        value = payload[spec.name]
        current = getattr(defaults, spec.name)
        if is_dataclass(current):
            if isinstance(value, Mapping):
                updates[spec.name] = _build_dataclass(type(current), value, current)
            else:
                LOGGER.warning("Ignoring non-mapping settings section %s", spec.name)
            continue
        if not _compatible(current, value):
            LOGGER.warning(
                "Settings value %s=%r has unexpected type; keeping default", spec.name, value
            )
            continue
        updates[spec.name] = value
    return replace(defaults, **updates) if updates else defaults


def _compatible(current: Any, value: Any) -> bool:
    if current is None or value is None:
        return True
    if isinstance(current, bool):
        return isinstance(value, bool)
    if isinstance(current, int):
        return isinstance(value, int) and not isinstance(value, bool)
    if isinstance(current, (list, dict, str)):
        return isinstance(value, type(current))
    return True


def _apply_overrides(
    settings: ContextSettings,
    overrides: Mapping[str, Any],
    *,
    source: str,
) -> ContextSettings:
    merged = settings.to_mapping()
    applied: list[str] = []
    for key, value in overrides.items():
        if value is None:
            continue
        path = tuple(key.split(".")) if isinstance(key, str) else tuple(key)
        if _assign(merged, path, value):
            applied.append(".".join(path))
    if not applied:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(applied))
    return ContextSettings.from_mapping(merged)


def _assign(target: Dict[str, Any], path: tuple[str, ...], value: Any) -> bool:
    node: Any = target
    for segment in path[:-1]:
        node = node.get(segment) if isinstance(node, dict) else None
        if node is None:
            return False
    if not isinstance(node, dict) or path[-1] not in node:
        return False
    node[path[-1]] = value
    return True


def _apply_env_overrides(settings: ContextSettings) -> ContextSettings:
    overrides: Dict[tuple[str, ...], Any] = {}
    for env_name, path in _BOOL_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None:
            overrides[path] = value.strip().lower() in _TRUE_VALUES
    for env_name, path in _INT_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[path] = int(value, 10)
        except ValueError:
            LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
    for env_name, path in _STR_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            overrides[path] = value
    if overrides:
        settings = _apply_overrides(settings, overrides, source="environment")
    return settings
