"""Tests for individual field extractors."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from contextsync.cache import TTLCache
from contextsync.errors import MalformedDataError
from contextsync.extractors import (
    GitSummary,
    Highlights,
    ImmediateExtractor,
    LspContext,
    PluginInventory,
    RecentBuffers,
    SemanticSnippets,
    build_git_tasks,
    build_query,
    flatten_symbols,
    parse_git_results,
    parse_manifest,
    symbol_names,
)
from contextsync.host import LspClient
from contextsync.privacy import REDACTION_MARKER, PrivacyFilter
from contextsync.runner import ParallelTaskRunner
from contextsync.settings import ContextSettings
from contextsync.snapshot import CurrentFile, CursorData

from tests.helpers import FakeHost, FakeSnippetSearch, FakeSpawner, ManualClock


def _enable(settings: ContextSettings, *names: str) -> ContextSettings:
    for name in names:
        getattr(settings, name).enabled = True
    return settings


# =============================================================================
# Symbols
# =============================================================================


SYMBOL_TREE = [
    {
        "name": "Widget",
        "kind": 5,
        "children": [
            {"name": "render", "kind": 6, "detail": "() -> None"},
            {"name": "[1]", "kind": 13},
            {"name": "render", "kind": 6},
        ],
    },
    {"name": "main", "kind": 12},
]


class TestSymbols:
    def test_flatten_filters_noise(self):
        flat = flatten_symbols(SYMBOL_TREE)

        assert [row["name"] for row in flat] == ["Widget", "render", "render", "main"]
        assert flat[1]["detail"] == "() -> None"
        assert flat[0]["range"] == {"start": [0, 0], "end": [0, 0]}

    def test_flatten_limit(self):
        tree = [{"name": f"s{index}", "kind": 12} for index in range(30)]

        assert len(flatten_symbols(tree, limit=20)) == 20

    def test_names_are_unique_in_order(self):
        assert symbol_names(SYMBOL_TREE) == ["Widget", "render", "main"]
        assert symbol_names(None) == []


# =============================================================================
# Git
# =============================================================================


class TestGitParsing:
    def test_task_set(self):
        names = [task.name for task in build_git_tasks(5)]

        assert names == ["branch", "sha", "status", "log"]
        with_diff = build_git_tasks(3, "/p/a.py")
        assert with_diff[-1].command == ("git", "diff", "HEAD", "--", "/p/a.py")
        assert with_diff[3].command[-1] == "3"

    def test_parse(self):
        info = parse_git_results(
            {
                "branch": "main",
                "sha": "abc1234",
                "status": "M  staged.py\n M work.py\n?? new.py\nMM both.py",
                "log": "abc1234 one\ndef5678 two",
                "diff": "\n".join(f"line {index}" for index in range(20)),
            },
            diff_limit=10,
        )

        assert info is not None
        assert info["branch"] == "main"
        assert info["head_sha"] == "abc1234"
        assert info["is_dirty"] is True
        assert info["staged_changes"] == 2
        assert info["unstaged_changes"] == 3
        assert info["recent_changes"] == ["abc1234 one", "def5678 two"]
        assert len(info["file_diff"]) == 10

    def test_clean_tree(self):
        info = parse_git_results({"branch": "main", "status": ""}, diff_limit=10)

        assert info is not None
        assert info["is_dirty"] is False
        assert "staged_changes" not in info

    def test_no_branch_yields_none(self):
        assert parse_git_results({"sha": "abc"}, diff_limit=10) is None


class TestGitSummary:
    @pytest.fixture
    def spawner(self) -> FakeSpawner:
        return (
            FakeSpawner()
            .on("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="main\n")
            .on("git", "rev-parse", "--short", "HEAD", stdout="abc1234\n")
            .on("git", "status", "--porcelain", stdout="")
            .on("git", "log", "--oneline", "-n", "5", stdout="abc1234 init\n")
        )

    @pytest.mark.asyncio
    async def test_collect_caches(self, spawner, settings, privacy, clock):
        cache = TTLCache(clock=clock.ns)
        summary = GitSummary(ParallelTaskRunner(spawner), cache, _enable(settings, "git_info"), privacy)

        first = await summary.collect()
        second = await summary.collect()

        assert first == second
        assert first is not None and first["branch"] == "main"
        assert len(spawner.started) == 4

    @pytest.mark.asyncio
    async def test_diff_only_for_project_files(self, spawner, settings, privacy, clock):
        summary = GitSummary(
            ParallelTaskRunner(spawner), TTLCache(clock=clock.ns), _enable(settings, "git_info"), privacy
        )

        await summary.collect("/elsewhere/a.py")

        assert not any(command[:2] == ("git", "diff") for command in spawner.started)

    @pytest.mark.asyncio
    async def test_disabled(self, spawner, settings, privacy, clock):
        summary = GitSummary(ParallelTaskRunner(spawner), TTLCache(clock=clock.ns), settings, privacy)

        assert await summary.collect() is None
        assert spawner.started == []


# =============================================================================
# Plugin manifest
# =============================================================================


class TestPluginManifest:
    def test_packages_layout(self):
        text = json.dumps(
            {"packages": {"b.nvim": {"version": "1.2", "commit": "0123456789abcdef"}, "a.nvim": {}}}
        )

        assert parse_manifest(text, limit=20) == [
            {"name": "a.nvim", "version": "unknown", "commit": "none"},
            {"name": "b.nvim", "version": "1.2", "commit": "01234567"},
        ]

    def test_flat_lock_layout(self):
        text = json.dumps({"lazy.nvim": {"branch": "main", "commit": "fedcba9876543210"}})

        assert parse_manifest(text, limit=20) == [
            {"name": "lazy.nvim", "version": "unknown", "commit": "fedcba98"}
        ]

    def test_limit(self):
        text = json.dumps({f"p{index:02d}": {"commit": "x"} for index in range(30)})

        assert len(parse_manifest(text, limit=20) or []) == 20

    @pytest.mark.parametrize("text", ["{oops", "[]", '{"packages": {"a": {"commit": 5}}}'])
    def test_malformed(self, text):
        with pytest.raises(MalformedDataError):
            parse_manifest(text, limit=20)

    @pytest.mark.asyncio
    async def test_collect_reads_and_caches(self, tmp_path, host, settings, clock):
        manifest = tmp_path / "lazy-lock.json"
        manifest.write_text(json.dumps({"a.nvim": {"commit": "0123456789"}}), encoding="utf-8")
        host.manifest_path = str(manifest)
        cache = TTLCache(clock=clock.ns)
        inventory = PluginInventory(host, cache, _enable(settings, "plugin_versions"))

        records = await inventory.collect()

        assert records == [{"name": "a.nvim", "version": "unknown", "commit": "01234567"}]
        assert [key for key in cache.keys() if key.startswith("plugin_versions_")] == [
            f"plugin_versions_{manifest.stat().st_mtime_ns}"
        ]

    @pytest.mark.asyncio
    async def test_missing_manifest(self, host, settings, clock):
        inventory = PluginInventory(host, TTLCache(clock=clock.ns), _enable(settings, "plugin_versions"))

        assert await inventory.collect() is None


# =============================================================================
# Immediate fields
# =============================================================================


@pytest.fixture
def editor(host: FakeHost, project_root: Path) -> FakeHost:
    path = str(project_root / "app.py")
    host.open(1, path, ["import os", "    x = 1", "print(x)"], filetype="python", lastused=5,
              clients=[LspClient(name="pyright", id=1, supports_symbols=True)])
    host.cursor_pos = (2, 5)
    return host


def _immediate(host: FakeHost, settings: ContextSettings, privacy: PrivacyFilter, clock: ManualClock):
    return ImmediateExtractor(host, settings, privacy, clock=clock, started_at=clock())


class TestImmediateExtractor:
    def test_current_file(self, editor, settings, privacy, clock, project_root):
        current = _immediate(editor, settings, privacy, clock).current_file()

        assert current == CurrentFile(
            path=str(project_root / "app.py"),
            name="app.py",
            extension="py",
            filetype="python",
            lsp_clients=["pyright"],
        )

    def test_cursor_data_trims_line(self, editor, settings, privacy, clock):
        cursor = _immediate(editor, settings, privacy, clock).cursor_data()

        assert cursor == CursorData(line=2, col=5, line_content="x = 1")

    def test_linter_summary(self, editor, settings, privacy, clock):
        editor.diagnostic_items = [
            {"lnum": 0, "message": "unused   import\n os", "severity": "warning"},
            {"lnum": 2, "message": "undefined", "severity": "error"},
            {"lnum": 1, "message": "hint", "severity": "info"},
        ]

        summary = _immediate(editor, settings, privacy, clock).linter_errors()

        assert summary == "Found 2 errors:\n Line 1: unused import os\n Line 3: undefined"

    def test_single_diagnostic_wording(self, editor, settings, privacy, clock):
        editor.diagnostic_items = [{"lnum": 4, "message": "bad", "severity": "error"}]

        assert _immediate(editor, settings, privacy, clock).linter_errors() == "Found 1 error:\n Line 5: bad"

    def test_selection_requires_text(self, editor, settings, privacy, clock):
        extractor = _immediate(editor, settings, privacy, clock)
        editor.selection = {"text": "   \n", "start_line": 1, "end_line": 1}
        assert extractor.selection(None) is None

        editor.selection = {"text": "    a = 1\n    b = 2", "start_line": 2, "end_line": 3}
        selection = extractor.selection(None)
        assert selection is not None
        assert selection.content == "a = 1\nb = 2"
        assert selection.lines == "2, 3"

    def test_disabled_fields_are_absent(self, editor, settings, privacy, clock):
        extractor = _immediate(editor, settings, privacy, clock)
        editor.registers = {'"': ("text", "v")}

        assert extractor.registers() is None
        assert extractor.marks() is None

    def test_registers_are_secret_filtered(self, editor, settings, privacy, clock):
        editor.registers = {'"': ("password = hunter2", "v"), "/": ("needle", "v")}
        extractor = _immediate(editor, _enable(settings, "registers"), privacy, clock)

        assert extractor.registers() == {
            '"': {"contents": REDACTION_MARKER, "regtype": "v"},
            "/": {"contents": "needle", "regtype": "v"},
        }

    def test_marks_are_path_filtered(self, editor, settings, privacy, clock, project_root):
        inside = str(project_root / "app.py")
        editor.mark_items = [
            {"mark": "a", "line": 1, "col": 0, "file": inside},
            {"mark": "B", "line": 9, "col": 2, "file": "/home/me/.bashrc"},
        ]

        marks = _immediate(editor, _enable(settings, "marks"), privacy, clock).marks()

        assert [mark["file"] for mark in marks or []] == [inside, "[EXTERNAL]/.bashrc"]

    def test_jumplist_keeps_last_entries(self, editor, settings, privacy, clock):
        editor.jump_items = [{"bufnr": 1, "lnum": line, "col": 0} for line in range(1, 16)]
        editor.jump_index = 14

        jumplist = _immediate(editor, _enable(settings, "jumplist"), privacy, clock).jumplist()

        assert jumplist is not None
        assert [jump["line"] for jump in jumplist["jumps"]] == list(range(6, 16))
        assert jumplist["current"] == 14

    def test_windows_exclude_external_buffers(self, editor, settings, privacy, clock, project_root):
        editor.window_items = [
            {"id": 1000, "bufnr": 1, "name": str(project_root / "app.py")},
            {"id": 1001, "bufnr": 2, "name": "/etc/hosts"},
            {"id": 1002, "bufnr": 3, "name": ""},
        ]
        editor.tab_items = [{"id": 1, "windows": [1000, 1001, 1002]}]

        layout = _immediate(editor, _enable(settings, "windows_tabs"), privacy, clock).windows_tabs()

        assert layout is not None
        assert [window["id"] for window in layout["windows"]] == [1000, 1002]
        assert layout["current_win"] == 1000

    def test_cursor_surrounding_clamps(self, editor, settings, privacy, clock):
        surrounding = _immediate(editor, _enable(settings, "cursor_surrounding"), privacy, clock).cursor_surrounding()

        assert surrounding == {
            "lines": ["import os", "    x = 1", "print(x)"],
            "start_line": 1,
            "end_line": 3,
            "current_line": 2,
        }

    def test_quickfix_limit(self, editor, settings, privacy, clock):
        editor.quickfix_items = [
            {"filename": "/etc/x", "lnum": index, "col": 1, "text": "t", "type": "E"} for index in range(8)
        ]

        lists = _immediate(editor, _enable(settings, "quickfix_loclist"), privacy, clock).quickfix_loclist()

        assert lists is not None
        assert len(lists["quickfix"]) == 5
        assert lists["loclist"] == []
        assert lists["quickfix"][0]["filename"] == "[EXTERNAL]/x"

    def test_terminal_buffers_most_recent(self, editor, settings, privacy, clock):
        editor.open(7, "term://~//1:/bin/zsh", lastused=3, buftype="terminal")
        editor.open(8, "term://~//2:/bin/bash", lastused=9, buftype="terminal")

        terminals = _immediate(editor, _enable(settings, "terminal_buffers"), privacy, clock).terminal_buffers()

        assert terminals is not None and [entry["bufnr"] for entry in terminals] == [8]

    def test_session_duration(self, editor, settings, privacy, clock):
        extractor = _immediate(editor, _enable(settings, "session_duration"), privacy, clock)
        clock.advance_ms(3_725_000)

        assert extractor.session_duration() == {
            "duration_seconds": 3725,
            "duration_minutes": 62,
            "duration_hours": 1,
        }

    def test_macros_are_secret_filtered(self, editor, settings, privacy, clock):
        editor.registers = {"q": ("itoken=abc123\x1b", "v")}

        macros = _immediate(editor, _enable(settings, "macros"), privacy, clock).macros()

        assert macros == {"register": "q", "content": REDACTION_MARKER}

    def test_history(self, editor, settings, privacy, clock):
        editor.histories = {"cmd": ["w", "", "q"], "search": ["foo"]}
        extractor = _immediate(editor, _enable(settings, "command_history", "search_history"), privacy, clock)

        assert extractor.command_history() == ["w", "q"]
        assert extractor.search_history() == ["foo"]


# =============================================================================
# Recent buffers, LSP and highlights
# =============================================================================


def _large_buffers(host: FakeHost, root: Path) -> None:
    client = LspClient(name="pyright", id=1, supports_symbols=True)
    host.open(2, str(root / "big.py"), [f"line {index}" for index in range(250)], lastused=10, clients=[client])
    host.open(3, str(root / "other.py"), [f"row {index}" for index in range(150)], lastused=20, clients=[client])
    host.open(4, str(root / "small.py"), ["tiny"], lastused=30, clients=[client])
    host.open(5, str(root / "plain.py"), [f"x {index}" for index in range(150)], lastused=40)
    host.symbols[2] = SYMBOL_TREE


class TestRecentBuffers:
    def test_candidates(self, editor, settings, privacy, clock, project_root):
        _large_buffers(editor, project_root)
        recent = RecentBuffers(editor, TTLCache(clock=clock.ns), _enable(settings, "recent_buffers"), privacy)

        assert [buffer.bufnr for buffer in recent.candidates()] == [3, 2]

    def test_previews(self, editor, settings, privacy, clock, project_root):
        _large_buffers(editor, project_root)
        recent = RecentBuffers(editor, TTLCache(clock=clock.ns), _enable(settings, "recent_buffers"), privacy)

        parts = recent.previews("look at @big.py")
        wire = parts[1].to_wire()
        record = json.loads(wire["text"])

        assert record["context_type"] == "recent-buffer"
        assert record["relative"] == "big.py"
        assert record["line_count"] == 250
        assert record["preview"].count("\n") == 201
        assert "symbols" not in record
        assert wire["source"]["text"] == {"start": 8, "value": "@big.py", "end": 14}

    def test_symbols_always_a_list(self, editor, settings, privacy, clock, project_root):
        _large_buffers(editor, project_root)
        recent = RecentBuffers(editor, TTLCache(clock=clock.ns), _enable(settings, "recent_buffers"), privacy)

        records = [json.loads(part.to_wire()["text"]) for part in recent.symbols(None)]

        assert records[0]["symbols"] == []
        assert records[1]["symbols"] == ["Widget", "render", "main"]
        assert "preview" not in records[0]

    def test_inventory(self, editor, settings, privacy, clock, project_root):
        _large_buffers(editor, project_root)
        settings = _enable(settings, "recent_buffers")
        settings.recent_buffers.symbols_only = True
        recent = RecentBuffers(editor, TTLCache(clock=clock.ns), settings, privacy)

        inventory = recent.inventory()

        assert inventory is not None
        assert [entry["bufnr"] for entry in inventory] == [5, 4, 3, 2, 1]
        by_number = {entry["bufnr"]: entry for entry in inventory}
        assert by_number[1]["cursor_surrounding"]["current_line"] == 2
        assert [row["name"] for row in by_number[2]["symbols"]] == ["Widget", "render", "render", "main"]
        assert "symbols" not in by_number[4]
        assert "symbols" not in by_number[5]

    def test_inventory_cached_per_revision(self, editor, settings, privacy, clock, project_root):
        _large_buffers(editor, project_root)
        editor.symbols[3] = []
        settings = _enable(settings, "recent_buffers")
        settings.recent_buffers.symbols_only = True
        recent = RecentBuffers(editor, TTLCache(clock=clock.ns), settings, privacy)

        recent.inventory()
        recent.inventory()
        assert editor.calls["document_symbols"] == 2

        editor.edit(1)
        recent.inventory()
        assert editor.calls["document_symbols"] == 2

        editor.edit(2)
        editor.edit(1)
        recent.inventory()
        assert editor.calls["document_symbols"] == 3


class TestLspContext:
    def test_collect(self, editor, settings, privacy, clock):
        editor.diagnostic_items = [{"lnum": 0, "col": 1, "message": "m", "severity": "error", "user_data": None}]
        editor.symbols[1] = SYMBOL_TREE

        context = LspContext(editor, TTLCache(clock=clock.ns), _enable(settings, "lsp_context"), privacy).collect()

        assert context is not None
        assert context["diagnostics"][0]["message"] == "m"
        assert context["diagnostics"][0]["user_data"] == "None"
        assert context["code_actions_available"] is True
        assert context["lsp_clients"] == [{"name": "pyright", "id": 1, "root_dir": None}]
        assert len(context["symbols"]) == 4

    def test_client_root_outside_project_is_redacted(self, editor, settings, privacy, clock, project_root):
        editor.clients[1] = [
            LspClient(name="pyright", id=1, root_dir=str(project_root)),
            LspClient(name="lua_ls", id=2, root_dir="/home/me/.config/nvim"),
        ]

        context = LspContext(editor, TTLCache(clock=clock.ns), _enable(settings, "lsp_context"), privacy).collect()

        assert context is not None
        assert [client["root_dir"] for client in context["lsp_clients"]] == [str(project_root), "[EXTERNAL]/nvim"]

    def test_nothing_to_report(self, host, settings, privacy, clock):
        host.open(1, "/p/a.txt")

        assert LspContext(host, TTLCache(clock=clock.ns), _enable(settings, "lsp_context"), privacy).collect() is None


class TestHighlights:
    def test_cached_until_revision_changes(self, editor, settings, clock):
        editor.match_items = [{"group": "Search", "pattern": "foo", "priority": 10}]
        editor.extmark_items = [
            {"id": 1, "line": 0, "col": 0, "hl_group": "Error"},
            {"id": 2, "line": 1, "col": 0},
        ]
        highlights = Highlights(editor, TTLCache(clock=clock.ns), _enable(settings, "highlights"))

        first = highlights.collect()
        highlights.collect()
        assert editor.calls["matches"] == 1
        assert first is not None and len(first) == 2

        editor.edit(1)
        highlights.collect()
        assert editor.calls["matches"] == 2


# =============================================================================
# Semantic snippets
# =============================================================================


class TestSemanticSnippets:
    current = CurrentFile(path="/p/app.py", name="app.py", extension="py", filetype="python")

    def test_query_strategies(self):
        cursor = CursorData(line=1, col=1, line_content="def main():")

        assert build_query("auto", self.current, cursor, "x = 1") == "x = 1 python"
        assert build_query("auto", self.current, cursor, None) == "def main(): python"
        assert build_query("auto", self.current, None, None) == "app.py python"
        assert build_query("selection", self.current, cursor, "x = 1") == "x = 1"
        assert build_query("line", self.current, cursor, "x = 1") == "def main(): python"
        assert build_query("filename", self.current, cursor, None) == "app.py python"

    @pytest.mark.asyncio
    async def test_collect(self, settings, privacy, clock, project_root):
        inside = str(project_root / "b.py")
        search = FakeSnippetSearch([{"path": inside, "document": "def b(): ..."}])
        snippets = SemanticSnippets(search, TTLCache(clock=clock.ns), _enable(settings, "semantic_snippets"), privacy)

        result = await snippets.collect(self.current, None)
        await snippets.collect(self.current, None)

        assert result == [{"path": inside, "content": "def b(): ..."}]
        assert search.queries == [("app.py python", 3)]

    @pytest.mark.asyncio
    async def test_long_query_skipped(self, settings, privacy, clock):
        search = FakeSnippetSearch()
        snippets = SemanticSnippets(search, TTLCache(clock=clock.ns), _enable(settings, "semantic_snippets"), privacy)

        assert await snippets.collect(self.current, None, "x" * 600) is None
        assert search.queries == []

    @pytest.mark.asyncio
    async def test_without_backend(self, settings, privacy, clock):
        snippets = SemanticSnippets(None, TTLCache(clock=clock.ns), _enable(settings, "semantic_snippets"), privacy)

        assert await snippets.collect(self.current, None) is None

    @pytest.mark.asyncio
    async def test_results_are_privacy_filtered(self, settings, privacy, clock):
        search = FakeSnippetSearch(
            [
                {"path": "/etc/x.py", "document": "print(1)"},
                {"path": "/etc/creds.py", "document": "api_key = 'abc123'"},
            ]
        )
        snippets = SemanticSnippets(search, TTLCache(clock=clock.ns), _enable(settings, "semantic_snippets"), privacy)

        result = await snippets.collect(self.current, None)

        assert result == [
            {"path": "[EXTERNAL]/x.py", "content": "print(1)"},
            {"path": "[EXTERNAL]/creds.py", "content": REDACTION_MARKER},
        ]
