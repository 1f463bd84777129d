"""Concurrent execution of external read-only commands.

All tasks of a set are spawned at once; the aggregate is delivered when the
last one finishes or when the timeout elapses, whichever comes first. A task
that fails or is still running at the deadline simply has no entry in the
result. Timed-out processes are not killed: they run to completion in the
background and their output is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Protocol, Sequence

__all__ = [
    "Task",
    "TaskResult",
    "ProcessOutput",
    "ProcessSpawner",
    "SubprocessSpawner",
    "ParallelTaskRunner",
]

LOGGER = logging.getLogger(__name__)

TaskResult = Dict[str, str]


@dataclass(slots=True, frozen=True)
class Task:
    """A named external command."""

    name: str
    command: tuple[str, ...]

    @classmethod
    def of(cls, name: str, *command: str) -> "Task":
        return cls(name=name, command=tuple(command))


@dataclass(slots=True, frozen=True)
class ProcessOutput:
    stdout: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessSpawner(Protocol):
    """Spawns a process and captures its standard output."""

    async def run(self, command: Sequence[str], *, cwd: Path | None = None) -> ProcessOutput:
        ...


class SubprocessSpawner:
    """Default spawner backed by :func:`asyncio.create_subprocess_exec`."""

    def __init__(self, *, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    async def run(self, command: Sequence[str], *, cwd: Path | None = None) -> ProcessOutput:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        raw, _ = await process.communicate()
        # Strict decoding: unreadable output counts as a failed task.
        return ProcessOutput(stdout=raw.decode(self._encoding), returncode=process.returncode or 0)


class ParallelTaskRunner:
    """Runs a task set concurrently and aggregates named outputs.

    Example:
        runner = ParallelTaskRunner(cwd=project_root)
        result = await runner.gather(
            [Task.of("branch", "git", "rev-parse", "--abbrev-ref", "HEAD")],
            timeout_ms=5_000,
        )
        branch = result.get("branch")
    """

    def __init__(
        self,
        spawner: ProcessSpawner | None = None,
        *,
        cwd: Path | None = None,
        default_timeout_ms: int = 5_000,
    ) -> None:
        self._spawner = spawner or SubprocessSpawner()
        self._cwd = cwd
        self._default_timeout_ms = default_timeout_ms
        self._orphans: set[asyncio.Task[str | None]] = set()
        self._pending_runs: set[asyncio.Task[TaskResult]] = set()

    @property
    def orphan_count(self) -> int:
        """Number of timed-out tasks still running in the background."""
        return len(self._orphans)

    def run(
        self,
        tasks: Sequence[Task],
        on_complete: Callable[[TaskResult], None],
        timeout_ms: int | None = None,
    ) -> asyncio.Task[TaskResult]:
        """Start ``tasks`` without blocking and call ``on_complete`` exactly once.

        Must be called from within a running event loop. The returned asyncio
        task resolves to the same result handed to ``on_complete``.
        """
        loop = asyncio.get_running_loop()

        async def _drive() -> TaskResult:
            result = await self.gather(tasks, timeout_ms)
            try:
                on_complete(result)
            except Exception:
                LOGGER.exception("Task set completion callback failed")
            return result

        job = loop.create_task(_drive())
        self._pending_runs.add(job)
        job.add_done_callback(self._pending_runs.discard)
        return job

    async def gather(self, tasks: Sequence[Task], timeout_ms: int | None = None) -> TaskResult:
        """Run ``tasks`` concurrently and return whatever finished in time.

        A non-positive ``timeout_ms`` delivers at once with only the tasks that
        completed without waiting.
        """
        if not tasks:
            return {}
        effective_timeout = self._default_timeout_ms if timeout_ms is None else timeout_ms
        loop = asyncio.get_running_loop()
        jobs: dict[str, asyncio.Task[str | None]] = {}
        for task in tasks:
            if task.name in jobs:
                LOGGER.warning("Duplicate task name %s; keeping the first", task.name)
                continue
            jobs[task.name] = loop.create_task(self._run_one(task))

        start_time = time.perf_counter()
        timeout = max(effective_timeout, 0) / 1000.0
        done, pending = await asyncio.wait(jobs.values(), timeout=timeout)

        result: TaskResult = {}
        for name, job in jobs.items():
            if job in done:
                output = job.result()
                if output is not None:
                    result[name] = output
            else:
                self._adopt(job)

        duration_ms = (time.perf_counter() - start_time) * 1000
        if pending:
            LOGGER.warning(
                "Task set timed out after %.1fms; %d of %d tasks outstanding",
                duration_ms,
                len(pending),
                len(jobs),
            )
        else:
            LOGGER.debug("Task set of %d completed in %.1fms", len(jobs), duration_ms)
        return result

    async def _run_one(self, task: Task) -> str | None:
        try:
            output = await self._spawner.run(task.command, cwd=self._cwd)
        except Exception as exc:
            LOGGER.debug("Task %s failed to run: %s", task.name, exc)
            return None
        if not output.ok:
            LOGGER.debug("Task %s exited with %s", task.name, output.returncode)
            return None
        return output.stdout.rstrip("\r\n")

    def _adopt(self, job: asyncio.Task[str | None]) -> None:
        # Outstanding work keeps running; hold a reference until it settles.
        self._orphans.add(job)
        job.add_done_callback(self._release)

    def _release(self, job: asyncio.Task[str | None]) -> None:
        self._orphans.discard(job)
        if not job.cancelled() and job.exception() is not None:
            LOGGER.debug("Discarded task failed late: %s", job.exception())
