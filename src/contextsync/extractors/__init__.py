"""Field acquisition from the host editor and external tools."""

from .git import GitSummary, build_git_tasks, parse_git_results
from .immediate import LIGHTWEIGHT_FIELDS, ImmediateExtractor, surrounding_lines
from .lsp import Highlights, LspContext
from .plugins import PluginInventory, parse_manifest
from .recent_buffers import RecentBuffers
from .semantic import SemanticSnippets, build_query
from .symbols import flatten_symbols, symbol_names

__all__ = [
    "ImmediateExtractor",
    "LIGHTWEIGHT_FIELDS",
    "surrounding_lines",
    "GitSummary",
    "build_git_tasks",
    "parse_git_results",
    "PluginInventory",
    "parse_manifest",
    "RecentBuffers",
    "LspContext",
    "Highlights",
    "SemanticSnippets",
    "build_query",
    "flatten_symbols",
    "symbol_names",
]
