"""Recover prompt, selection and current file from previously sent messages."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .errors import PartDecodeError

__all__ = [
    "ExtractedContext",
    "extract_from_message",
    "extract_from_legacy_message",
    "extract_legacy_tag",
]

LOGGER = logging.getLogger(__name__)

_SYNTHETIC_RECORD_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "required": ["context_type"],
    "properties": {"context_type": {"type": "string"}},
}
_RECORD_VALIDATOR = Draft202012Validator(_SYNTHETIC_RECORD_SCHEMA)
_PATH_LINE = re.compile(r"Path: (.+)")


@dataclass(slots=True)
class ExtractedContext:
    prompt: str | None = None
    selected_text: str | None = None
    current_file: str | None = None

    @property
    def complete(self) -> bool:
        return self.prompt is not None and self.selected_text is not None and self.current_file is not None


def _decode_record(part: Mapping[str, Any]) -> dict[str, Any]:
    text = part.get("text")
    if not isinstance(text, str):
        raise PartDecodeError("Synthetic part has no text", part_type=part.get("type"))
    try:
        record = json.loads(text)
        _RECORD_VALIDATOR.validate(record)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise PartDecodeError(f"Undecodable synthetic part: {exc}", part_type=part.get("type")) from exc
    return record


def extract_from_message(message: Mapping[str, Any] | None) -> ExtractedContext:
    """Walk a formatted message's parts and pull out the user-facing context.

    The first plain text part is the prompt; a synthetic ``selection`` record
    yields the selected text; a file part without a mention source is the
    current file. Parts that fail to decode are skipped.
    """

    context = ExtractedContext()
    for part in (message or {}).get("parts") or ():
        kind = part.get("type")
        if kind == "text" and not part.get("synthetic"):
            if context.prompt is None:
                context.prompt = part.get("text") or ""
        elif kind == "text":
            try:
                record = _decode_record(part)
            except PartDecodeError as exc:
                LOGGER.debug("Skipping message part: %s", exc)
                continue
            if record["context_type"] == "selection" and record.get("content") is not None:
                context.selected_text = record["content"]
        elif kind == "file" and not part.get("source"):
            context.current_file = part.get("filename")

        if context.complete:
            break
    return context


def extract_legacy_tag(tag: str, text: str) -> str | None:
    """Return the trimmed content between ``<tag>`` and ``</tag>``, if any."""

    start_tag = f"<{tag}>"
    end_tag = f"</{tag}>"
    match = re.search(re.escape(start_tag) + r"(.*?)" + re.escape(end_tag), text, re.DOTALL)
    if match is not None:
        return match.group(1).strip()
    return None


def extract_from_legacy_message(text: str) -> ExtractedContext:
    """Parse the older tagged plain-text message layout."""

    current_file = extract_legacy_tag("current-file", text)
    path_match = _PATH_LINE.search(current_file) if current_file else None
    return ExtractedContext(
        prompt=extract_legacy_tag("user-query", text) or text,
        selected_text=extract_legacy_tag("manually-added-selection", text),
        current_file=path_match.group(1) if path_match else None,
    )
