"""Serialize a reduced snapshot into an ordered list of message parts."""

from __future__ import annotations

import logging
import os
from dataclasses import is_dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from .parts import (
    AgentPart,
    FilePart,
    LocationHint,
    MessagePart,
    SyntheticTextPart,
    TextPart,
    locate_mention,
)
from .privacy import EXTERNAL_PREFIX
from .snapshot import Selection, Snapshot

__all__ = ["FIELD_ORDER", "format_message", "display_path", "selection_part"]

LOGGER = logging.getLogger(__name__)

# Generic fields emitted after selections, diagnostics and cursor data.
FIELD_ORDER: tuple[str, ...] = (
    "marks",
    "jumplist",
    "recent_buffers",
    "undo_history",
    "windows_tabs",
    "highlights",
    "session_info",
    "registers",
    "command_history",
    "search_history",
    "debug_data",
    "lsp_context",
    "plugin_versions",
    "git_info",
    "fold_info",
    "cursor_surrounding",
    "quickfix_loclist",
    "macros",
    "terminal_buffers",
    "session_duration",
    "semantic_snippets",
    "mentioned_files_content",
)


def display_path(path: str, root: Path) -> str:
    """Render ``path`` relative to ``root``, else home-relative, else as given."""

    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        try:
            return candidate.relative_to(root).as_posix()
        except ValueError:
            pass
        home = Path.home()
        try:
            return "~/" + candidate.relative_to(home).as_posix()
        except ValueError:
            return path
    return path


def selection_part(selection: Selection) -> SyntheticTextPart:
    fence = f"```{selection.language}\n{selection.content}\n```"
    return SyntheticTextPart(
        context_type="selection",
        payload={
            "file": selection.file.as_payload() if selection.file is not None else None,
            "content": fence,
            "lines": selection.lines,
        },
    )


def format_message(
    prompt: str,
    delta: Snapshot,
    *,
    root: Path,
    recent_parts: Sequence[MessagePart] | None = None,
) -> list[MessagePart]:
    """Build the wire-ready parts for one user message.

    The prompt always comes first. Mention parts carry location hints pointing
    at the first ``@mention`` in the prompt so the receiver can link them.

    Args:
        prompt: Raw user prompt.
        delta: Snapshot already reduced by :func:`~contextsync.delta.compute_delta`.
        root: Project root used to render mention paths.
        recent_parts: Optional recent-buffer attachment parts placed right
            after the prompt.
    """

    parts: list[MessagePart] = [TextPart(prompt)]
    parts.extend(recent_parts or ())

    for path in delta.mentioned_files or ():
        parts.append(_file_mention(prompt, path, root))

    for name in delta.mentioned_subagents or ():
        parts.append(AgentPart(name=name, location=locate_mention(prompt, "@" + name, inclusive_end=False)))

    if delta.current_file is not None:
        current = delta.current_file
        parts.append(FilePart(path=current.path, filename=display_path(current.path, root)))

    for selection in delta.selections or ():
        parts.append(selection_part(selection))

    if delta.linter_errors:
        parts.append(SyntheticTextPart.of("diagnostics", delta.linter_errors))

    if delta.cursor_data is not None:
        parts.append(
            SyntheticTextPart(
                context_type="cursor-data",
                payload={"line": delta.cursor_data.line, "column": delta.cursor_data.col},
            )
        )

    for name, value in _ordered_fields(delta):
        parts.append(SyntheticTextPart.of(name, _jsonable(value)))

    LOGGER.debug("Formatted message with %d parts", len(parts))
    return parts


def _file_mention(prompt: str, path: str, root: Path) -> FilePart:
    shown = display_path(path, root)
    hint = locate_mention(prompt, "@" + shown, inclusive_end=True)
    # Redacted external paths are placeholders, never rebased onto the project.
    if path.startswith(EXTERNAL_PREFIX) or os.path.isabs(path):
        absolute = path
    else:
        absolute = str(root / path)
    return FilePart(
        path=absolute,
        filename=shown,
        location=LocationHint(value=hint.value, start=hint.start, end=hint.end, path=absolute),
    )


def _ordered_fields(delta: Snapshot) -> Iterable[tuple[str, Any]]:
    for name in FIELD_ORDER:
        value = getattr(delta, name)
        if value is None:
            continue
        yield name, value


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and hasattr(value, "as_payload"):
        return value.as_payload()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value
