"""Document symbol flattening shared by LSP context and recent buffers."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Sequence

__all__ = ["flatten_symbols", "symbol_names", "is_noise_symbol"]

# Some servers emit positional placeholders such as "[1]" for array items.
_NOISE = re.compile(r"^\[\d+\]$")
_EMPTY_RANGE = {"start": [0, 0], "end": [0, 0]}


def is_noise_symbol(name: str) -> bool:
    return bool(_NOISE.match(name))


def _walk(symbols: Iterable[Mapping[str, Any]]) -> Iterable[Mapping[str, Any]]:
    for symbol in symbols:
        yield symbol
        children = symbol.get("children")
        if children:
            yield from _walk(children)


def flatten_symbols(symbols: Sequence[Mapping[str, Any]] | None, *, limit: int = 20) -> list[dict[str, Any]]:
    """Depth-first flatten a symbol tree into ``{name, kind, range, detail}`` rows."""

    flat: list[dict[str, Any]] = []
    for symbol in _walk(symbols or ()):
        name = symbol.get("name")
        if not name or is_noise_symbol(name):
            continue
        flat.append(
            {
                "name": name,
                "kind": symbol.get("kind"),
                "range": symbol.get("range") or dict(_EMPTY_RANGE),
                "detail": symbol.get("detail") or "",
            }
        )
        if len(flat) >= limit:
            break
    return flat


def symbol_names(symbols: Sequence[Mapping[str, Any]] | None) -> list[str]:
    """Unique symbol names in first-seen order, noise removed."""

    seen: dict[str, None] = {}
    for symbol in _walk(symbols or ()):
        name = symbol.get("name") or "<anonymous>"
        if not is_noise_symbol(name):
            seen.setdefault(name, None)
    return list(seen)
