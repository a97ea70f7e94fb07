"""Shared test fixtures for reposync."""

from __future__ import annotations

import os
import subprocess
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from reposync.config import Settings
from reposync.main import create_app
from reposync.services.status_store import StatusStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

# Inherited GIT_* vars (e.g. when tests run under a git hook) would make
# commands target the outer repository instead of the temporary one.
_GIT_ENV_VARS = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_COMMON_DIR",
    "GIT_PREFIX",
    "GIT_CEILING_DIRECTORIES",
)


def run_git(cwd: Path, *args: str) -> str:
    """Run a git command for test setup and return its stdout."""
    env = {k: v for k, v in os.environ.items() if k not in _GIT_ENV_VARS}
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        env=env,
        check=False,
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0, f"git {args} failed: {result.stderr}"
    return result.stdout


def commit_all(repo: Path, message: str) -> str:
    """Stage everything in ``repo``, commit, and return the new HEAD."""
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "-m", message)
    return run_git(repo, "rev-parse", "HEAD").strip()


@asynccontextmanager
async def create_test_client(
    settings: Settings,
    status_store: StatusStore | None = None,
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client without running the sync lifespan.

    ASGITransport does not trigger the lifespan, so no sync is attempted;
    tests drive the status store and the mirror directory directly.
    """
    app = create_app(settings, status_store=status_store)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def source_repo(tmp_path: Path) -> Path:
    """Create a source repository on branch ``main`` with one commit."""
    source = tmp_path / "source"
    source.mkdir()
    run_git(source, "init", "--initial-branch=main")
    run_git(source, "config", "user.email", "bot@example.com")
    run_git(source, "config", "user.name", "Bot")
    run_git(source, "config", "commit.gpgsign", "false")
    (source / "nested").mkdir()
    (source / "collections.json").write_text('{"version":1}')
    (source / "nested" / "tracked.json").write_text('{"tracked":true}')
    commit_all(source, "initial")
    return source


@pytest.fixture
def mirror_dir(tmp_path: Path) -> Path:
    """Location for the mirror; not created."""
    return tmp_path / "data" / "mirror"


@pytest.fixture
def sync_settings(source_repo: Path, mirror_dir: Path) -> Settings:
    """Settings syncing ``source_repo`` into ``mirror_dir``."""
    return Settings(
        _env_file=None,
        git_repo_url=f"file://{source_repo}",
        git_branch="main",
        mirror_dir=mirror_dir,
        git_timeout_seconds=60,
    )


@pytest.fixture
def serve_dir(tmp_path: Path) -> Path:
    """A plain directory standing in for an already-synced mirror."""
    mirror = tmp_path / "repo"
    mirror.mkdir()
    return mirror


@pytest.fixture
def test_settings(serve_dir: Path) -> Settings:
    """Settings serving ``serve_dir`` with small limits."""
    return Settings(
        _env_file=None,
        git_repo_url="https://github.com/org/repo.git",
        mirror_dir=serve_dir,
        max_path_length=512,
        max_file_size_bytes=1024 * 1024,
    )


@pytest.fixture
def status_store() -> StatusStore:
    return StatusStore()


@pytest.fixture
async def client(
    test_settings: Settings,
    status_store: StatusStore,
) -> AsyncGenerator[AsyncClient]:
    """HTTP client for an app serving ``serve_dir``."""
    async with create_test_client(test_settings, status_store) as ac:
        yield ac
