"""Shared fixtures for agentloop tests."""

from pathlib import Path

import pytest
import structlog

from agentloop.core.domain.context import ExecutionContext


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by CLI commands under test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty sandbox root."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def context(workspace: Path) -> ExecutionContext:
    """Execution context rooted at the workspace fixture."""
    return ExecutionContext.create(workspace, "test-session")
