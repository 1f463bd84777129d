"""Exception taxonomy for context acquisition.

None of these errors reach callers of :class:`~contextsync.context.EditorContext`.
Extractors raise them and the engine resolves the affected field to ``None``.
"""

from __future__ import annotations

__all__ = [
    "ContextError",
    "CapabilityUnavailableError",
    "MalformedDataError",
    "PartDecodeError",
]


class ContextError(Exception):
    """Base class for context acquisition failures."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class CapabilityUnavailableError(ContextError):
    """A host API, plugin or language server needed for a field is missing."""


class MalformedDataError(ContextError):
    """External data (manifest, file, command output) could not be parsed."""


class PartDecodeError(ContextError):
    """A previously formatted message part could not be decoded."""

    def __init__(self, message: str, *, part_type: str | None = None) -> None:
        self.part_type = part_type
        super().__init__(message)
