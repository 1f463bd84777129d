"""Version control summary built from parallel ``git`` invocations."""

from __future__ import annotations

import logging
from typing import Any

from ..cache import TTLCache
from ..privacy import PrivacyFilter
from ..runner import ParallelTaskRunner, Task, TaskResult
from ..settings import ContextSettings

__all__ = ["GitSummary", "build_git_tasks", "parse_git_results", "GIT_CACHE_KEY"]

LOGGER = logging.getLogger(__name__)

GIT_CACHE_KEY = "git_info"


def build_git_tasks(changes_limit: int, current_file: str | None = None) -> list[Task]:
    """Return the read-only git commands; the diff only for an in-project file."""

    tasks = [
        Task.of("branch", "git", "rev-parse", "--abbrev-ref", "HEAD"),
        Task.of("sha", "git", "rev-parse", "--short", "HEAD"),
        Task.of("status", "git", "status", "--porcelain"),
        Task.of("log", "git", "log", "--oneline", "-n", str(changes_limit)),
    ]
    if current_file:
        tasks.append(Task.of("diff", "git", "diff", "HEAD", "--", current_file))
    return tasks


def parse_git_results(results: TaskResult, *, diff_limit: int) -> dict[str, Any] | None:
    """Fold raw command output into the ``git_info`` record.

    Returns ``None`` when the branch is unknown (not a repository, or the
    branch command failed or timed out).
    """

    branch = results.get("branch")
    if not branch:
        return None

    info: dict[str, Any] = {"branch": branch, "head_sha": results.get("sha")}

    status = results.get("status")
    if status is not None:
        entries = [line for line in status.splitlines() if line]
        info["is_dirty"] = bool(entries)
        staged = sum(1 for line in entries if line[0] not in (" ", "?"))
        unstaged = sum(1 for line in entries if len(line) > 1 and line[1] != " ")
        if staged:
            info["staged_changes"] = staged
        if unstaged:
            info["unstaged_changes"] = unstaged

    diff = results.get("diff")
    if diff is not None:
        info["file_diff"] = diff.split("\n")[:diff_limit]

    log = results.get("log")
    if log is not None:
        info["recent_changes"] = log.split("\n")

    return info


class GitSummary:
    """Cached, parallel git summary for the project root."""

    def __init__(
        self,
        runner: ParallelTaskRunner,
        cache: TTLCache,
        settings: ContextSettings,
        privacy: PrivacyFilter,
    ) -> None:
        self._runner = runner
        self._cache = cache
        self._settings = settings
        self._privacy = privacy

    async def collect(self, current_file: str | None = None) -> dict[str, Any] | None:
        if not self._settings.is_enabled("git_info"):
            return None

        ttl_ms = self._settings.ttl_for(GIT_CACHE_KEY)
        entry = self._cache.lookup(GIT_CACHE_KEY, ttl_ms)
        if entry is not None and entry.value is not None:
            return entry.value

        config = self._settings.git_info
        diff_target = current_file if current_file and self._privacy.is_in_project(current_file) else None
        tasks = build_git_tasks(config.changes_limit, diff_target)
        results = await self._runner.gather(tasks, timeout_ms=config.timeout_ms)
        info = parse_git_results(results, diff_limit=config.diff_limit)
        if info is None:
            LOGGER.debug("No git branch resolved; skipping git summary")
            return None
        self._cache.set(GIT_CACHE_KEY, info)
        return info
