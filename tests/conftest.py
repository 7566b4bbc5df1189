from __future__ import annotations

from pathlib import Path

import pytest

from extbuild.config import ExtBuildConfig
from extbuild.context import BuildContext
from tests._fixtures.runners import RecordingRunner
from tests._fixtures.workspace_builder import WorkspaceBuilder


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceBuilder:
    """Provide a reusable workspace builder rooted at the pytest tmp_path."""
    return WorkspaceBuilder(tmp_path)


@pytest.fixture
def config(tmp_path: Path) -> ExtBuildConfig:
    return ExtBuildConfig(root=tmp_path)


@pytest.fixture
def context(config: ExtBuildConfig) -> BuildContext:
    """Fresh per-test build context (own link registry and error list)."""
    return BuildContext(config=config)


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()
