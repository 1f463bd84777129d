"""Path redaction and secret detection applied before values are stored.

Both transforms are pure and individually switchable. Secret detection is a
heuristic that deliberately over-matches: a false positive only costs some
register context, a false negative leaks a credential.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any

from .settings import PrivacySettings

__all__ = [
    "PrivacyFilter",
    "REDACTION_MARKER",
    "EXTERNAL_PREFIX",
    "SECRET_PATTERNS",
    "contains_secret",
    "redact_path",
]

LOGGER = logging.getLogger(__name__)

REDACTION_MARKER = "[REDACTED: Potential secret detected]"
EXTERNAL_PREFIX = "[EXTERNAL]/"

_ASSIGNMENT = r"""[_\- ]?[:=]\s*['"]?[\w\-]+['"]?"""
SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[\w\-]+\.[\w\-]+\.[\w\-]+"),  # JWT-shaped xxx.yyy.zzz
    re.compile(r"api[_\- ]?key" + _ASSIGNMENT, re.IGNORECASE),
    re.compile(r"token" + _ASSIGNMENT, re.IGNORECASE),
    re.compile(r"password" + _ASSIGNMENT, re.IGNORECASE),
    re.compile(r"secret" + _ASSIGNMENT, re.IGNORECASE),
    re.compile(r"[0-9a-fA-F]{32,}"),
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"-----BEGIN [A-Z0-9 ]+ PRIVATE KEY-----"),
)


def contains_secret(content: str | None) -> bool:
    """Return True when ``content`` matches any secret heuristic."""

    if not content:
        return False
    return any(pattern.search(content) for pattern in SECRET_PATTERNS)


def redact_path(path: str | None, root: Path) -> str | None:
    """Return ``path`` unchanged when it lies under ``root``, else a redacted basename."""

    if not path:
        return path
    if is_under_root(path, root):
        return path
    return EXTERNAL_PREFIX + PurePath(path).name


def is_under_root(path: str, root: Path) -> bool:
    candidate = Path(os.path.expanduser(path))
    if not candidate.is_absolute():
        candidate = root / candidate
    try:
        resolved = candidate.resolve(strict=False)
        base = root.resolve(strict=False)
    except (OSError, RuntimeError):
        return False
    return resolved.is_relative_to(base)


@dataclass(slots=True)
class PrivacyFilter:
    """Settings-aware facade over :func:`redact_path` and :func:`contains_secret`."""

    root: Path
    path_redaction: bool = True
    secret_detection: bool = True

    @classmethod
    def from_settings(cls, root: Path, settings: PrivacySettings) -> "PrivacyFilter":
        return cls(
            root=root.resolve(),
            path_redaction=settings.privacy_filter,
            secret_detection=settings.secret_filter,
        )

    def is_in_project(self, path: str | None) -> bool:
        return bool(path) and is_under_root(path, self.root)  # type: ignore[arg-type]

    def redact_path(self, path: str | None) -> str | None:
        if not self.path_redaction:
            return path
        return redact_path(path, self.root)

    def contains_secret(self, content: str | None) -> bool:
        if not self.secret_detection:
            return False
        return contains_secret(content)

    def redact_text(self, content: str) -> str:
        if self.contains_secret(content):
            LOGGER.debug("Redacted %d characters of suspected secret content", len(content))
            return REDACTION_MARKER
        return content

    def redact_register(self, contents: str, regtype: str) -> dict[str, Any]:
        """Return a register payload with secret-looking contents replaced."""
        return {"contents": self.redact_text(contents), "regtype": regtype}
