"""Typed message parts and their wire representation."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Mapping, Union

__all__ = [
    "LocationHint",
    "TextPart",
    "FilePart",
    "AgentPart",
    "SyntheticTextPart",
    "MessagePart",
    "locate_mention",
]


@dataclass(slots=True, frozen=True)
class LocationHint:
    """Where a ``@mention`` sits in the prompt (0-based offsets)."""

    value: str
    start: int
    end: int
    path: str | None = None


def locate_mention(prompt: str | None, mention: str, *, inclusive_end: bool) -> LocationHint:
    """Locate the first literal ``mention`` in ``prompt``; start-of-string if missing."""

    start = prompt.find(mention) if prompt else -1
    if start < 0:
        start = 0
    end = start + len(mention) - (1 if inclusive_end else 0)
    return LocationHint(value=mention, start=start, end=end)


@dataclass(slots=True, frozen=True)
class TextPart:
    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True, frozen=True)
class FilePart:
    """Reference to a file the assistant may read."""

    path: str
    filename: str
    mime: str = "text/plain"
    location: LocationHint | None = None

    @property
    def url(self) -> str:
        return "file://" + self.path

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "type": "file",
            "filename": self.filename,
            "mime": self.mime,
            "url": self.url,
        }
        if self.location is not None:
            wire["source"] = {
                "path": self.path,
                "type": "file",
                "text": {
                    "start": self.location.start,
                    "value": self.location.value,
                    "end": self.location.end,
                },
            }
        return wire


@dataclass(slots=True, frozen=True)
class AgentPart:
    name: str
    location: LocationHint

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "agent",
            "name": self.name,
            "source": {
                "value": self.location.value,
                "start": self.location.start,
                "end": self.location.end,
            },
        }


@dataclass(slots=True, frozen=True)
class SyntheticTextPart:
    """Structured context serialized as a self-describing JSON record.

    ``payload`` holds the record's keys other than ``context_type``; most
    fields use ``{"content": value}``.
    """

    context_type: str
    payload: Mapping[str, Any]
    location: LocationHint | None = None

    @classmethod
    def of(cls, context_type: str, content: Any) -> "SyntheticTextPart":
        return cls(context_type=context_type, payload={"content": content})

    def record(self) -> dict[str, Any]:
        return {"context_type": self.context_type, **self.payload}

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "type": "text",
            "text": json.dumps(self.record()),
            "synthetic": True,
        }
        if self.location is not None:
            wire["source"] = {
                "path": self.location.path,
                "type": "file",
                "text": {
                    "start": self.location.start,
                    "value": self.location.value,
                    "end": self.location.end,
                },
            }
        return wire


MessagePart = Union[TextPart, FilePart, AgentPart, SyntheticTextPart]
