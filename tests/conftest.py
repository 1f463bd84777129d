"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextsync.privacy import PrivacyFilter
from contextsync.settings import ContextSettings

from tests.helpers import FakeHost, ManualClock


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def settings(project_root: Path) -> ContextSettings:
    return ContextSettings(project_root=str(project_root))


@pytest.fixture
def privacy(project_root: Path) -> PrivacyFilter:
    return PrivacyFilter(root=project_root)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()
