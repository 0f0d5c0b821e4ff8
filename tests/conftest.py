"""
Global pytest configuration and fixtures for the MCP Git engine test suite.

This file provides:
1. Shared fixtures for temporary directories and git repositories
2. Automatic marking of tests based on their location and fixtures
3. Skipping of git-backed tests on hosts without a git binary
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from mcp_git_engine.git.context import OperationContext
from mcp_git_engine.git.process import detect_runtime
from mcp_git_engine.providers import reset_providers

from fixtures.git_repos import (  # noqa: F401
    GitRepositoryFactory,
    clean_git_repo,
    dirty_git_repo,
    git_repo_factory,
    multi_branch_repo,
    remote_pair,
)


GIT_AVAILABLE = shutil.which("git") is not None


@pytest.fixture(autouse=True)
def isolated_engine_state(monkeypatch):
    """Keep spawn-strategy detection and provider caches from leaking between tests."""
    monkeypatch.delenv("GIT_ENGINE_SPAWN_STRATEGY", raising=False)
    detect_runtime.cache_clear()
    reset_providers()
    yield
    detect_runtime.cache_clear()
    reset_providers()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_git_repo(temp_dir: Path) -> Path:
    """Create a git repository on branch ``main`` with one commit."""
    return GitRepositoryFactory.create_clean_repo(temp_dir / "test_repo")


@pytest.fixture
def repo_context(mock_git_repo: Path) -> OperationContext:
    return OperationContext(working_directory=str(mock_git_repo), trace={"request_id": "test"})


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Tests that spawn real git processes")
    config.addinivalue_line("markers", "slow: Tests that take more than 1 second")
    config.addinivalue_line("markers", "requires_git: Tests that need a git binary on PATH")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location and fixtures."""
    skip_git = pytest.mark.skip(reason="git binary not found on PATH")

    for item in items:
        path = str(item.fspath)
        if "tests/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in path:
            item.add_marker(pytest.mark.integration)

        git_fixtures = {"mock_git_repo", "repo_context", "clean_git_repo", "dirty_git_repo",
                        "multi_branch_repo", "remote_pair", "git_repo_factory"}
        if git_fixtures.intersection(item.fixturenames):
            item.add_marker(pytest.mark.requires_git)

        if item.get_closest_marker("requires_git") and not GIT_AVAILABLE:
            item.add_marker(skip_git)
