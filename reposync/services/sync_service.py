"""Sync engine: keeps the mirror equal to the remote branch tip.

Each attempt walks a fixed sequence of named steps::

    ensure-present -> configure-remote -> fetch -> reset -> clean -> resolve-head

Every step raises its own ``SyncError`` subclass, so a failure is attributed
to exactly one step. The git work runs in a worker thread; the status store is
touched only on the event loop, before and after that work.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING

from reposync.exceptions import (
    CleanFailedError,
    CloneFailedError,
    EmptyCommitError,
    FetchFailedError,
    MirrorUnavailableError,
    RemoteConfigError,
    ResetFailedError,
    SyncError,
)
from reposync.services.datetime_service import now_utc
from reposync.services.git_service import GitCommandError
from reposync.services.status_store import mark_attempt, mark_failure, mark_success

if TYPE_CHECKING:
    from pathlib import Path

    from reposync.config import Settings
    from reposync.services.git_service import GitService
    from reposync.services.status_store import StatusStore

logger = logging.getLogger(__name__)

REMOTE_NAME = "origin"


class SyncStep(Enum):
    ENSURE_PRESENT = "ensure-present"
    CONFIGURE_REMOTE = "configure-remote"
    FETCH = "fetch"
    RESET = "reset"
    CLEAN = "clean"
    RESOLVE_HEAD = "resolve-head"


def prune_empty_dirs(work_dir: Path) -> int:
    """Remove directories left empty under ``work_dir``, deepest first.

    ``work_dir`` itself and anything under ``.git`` are never touched.
    Returns the number of directories removed.
    """
    candidates: list[str] = []
    for dirpath, dirnames, _ in os.walk(work_dir):
        if dirpath == os.fspath(work_dir):
            dirnames[:] = [d for d in dirnames if d != ".git"]
        candidates.extend(os.path.join(dirpath, d) for d in dirnames)

    # Parents are listed before their children, so reversed order is deepest first.
    removed = 0
    for path in reversed(candidates):
        if os.path.islink(path) or os.listdir(path):
            continue
        os.rmdir(path)
        removed += 1
    return removed


class SyncEngine:
    """Clones, fetches, resets and cleans the mirror, one attempt at a time."""

    def __init__(self, settings: Settings, git: GitService, store: StatusStore) -> None:
        self._settings = settings
        self._git = git
        self._store = store
        self._lock = asyncio.Lock()

    @property
    def mirror_dir(self) -> Path:
        return self._settings.mirror_dir

    # ── Steps ────────────────────────────────────────

    def _ensure_present(self) -> None:
        mirror_dir = self.mirror_dir
        if mirror_dir.exists() and not mirror_dir.is_dir():
            raise MirrorUnavailableError(f"mirror path is not a directory: {mirror_dir}")

        if self._git.has_metadata():
            if not self._git.is_repository():
                raise MirrorUnavailableError(f"not a usable git repository: {mirror_dir}")
            return
        if mirror_dir.is_dir() and any(mirror_dir.iterdir()):
            raise MirrorUnavailableError(
                f"mirror dir is not empty and has no git metadata: {mirror_dir}"
            )

        try:
            mirror_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MirrorUnavailableError(
                f"failed creating parent dir {mirror_dir.parent}: {exc.strerror}"
            ) from exc
        try:
            self._git.clone(self._settings.git_repo_url, self._settings.git_branch)
        except GitCommandError as exc:
            raise CloneFailedError(str(exc)) from exc

    def _configure_remote(self) -> None:
        try:
            self._git.set_remote(REMOTE_NAME, self._settings.git_repo_url)
        except GitCommandError as exc:
            raise RemoteConfigError(str(exc)) from exc

    def _fetch(self) -> None:
        try:
            self._git.fetch_branch(REMOTE_NAME, self._settings.git_branch)
        except GitCommandError as exc:
            raise FetchFailedError(str(exc)) from exc

    def _reset(self) -> None:
        branch = self._settings.git_branch
        try:
            self._git.hard_reset(branch, f"refs/remotes/{REMOTE_NAME}/{branch}")
        except GitCommandError as exc:
            raise ResetFailedError(str(exc)) from exc

    def _clean(self) -> None:
        try:
            self._git.clean_untracked()
        except GitCommandError as exc:
            raise CleanFailedError(str(exc)) from exc
        try:
            removed = prune_empty_dirs(self.mirror_dir)
        except OSError as exc:
            raise CleanFailedError(f"failed removing empty directory: {exc.strerror}") from exc
        if removed:
            logger.debug("Pruned %d empty directories from %s", removed, self.mirror_dir)

    def _resolve_head(self) -> str:
        sha = self._git.head_commit()
        if not sha:
            raise EmptyCommitError("HEAD does not resolve to a commit")
        return sha

    def _run_steps(self) -> str:
        """Run every step in order and return the resulting commit id. Blocking."""
        steps = (
            (SyncStep.ENSURE_PRESENT, self._ensure_present),
            (SyncStep.CONFIGURE_REMOTE, self._configure_remote),
            (SyncStep.FETCH, self._fetch),
            (SyncStep.RESET, self._reset),
            (SyncStep.CLEAN, self._clean),
        )
        for step, run in steps:
            logger.debug("Sync step %s", step.value)
            run()
        logger.debug("Sync step %s", SyncStep.RESOLVE_HEAD.value)
        return self._resolve_head()

    # ── Attempts ─────────────────────────────────────

    async def sync_once(self) -> str:
        """Run one sync attempt and record its outcome in the status store.

        Returns the mirror's commit id.

        Raises:
            SyncError: The attempt failed; ``last_error`` has been recorded.
        """
        async with self._lock:
            before = await self._store.update(partial(mark_attempt, at=now_utc()))
            try:
                sha = await asyncio.to_thread(self._run_steps)
            except SyncError as exc:
                message = self._git.redact(str(exc))
                await self._store.update(partial(mark_failure, message=message))
                raise
            except Exception as exc:
                logger.exception("Unexpected error during sync")
                error = SyncError(f"unexpected error: {type(exc).__name__}")
                await self._store.update(partial(mark_failure, message=str(error)))
                raise error from exc

            await self._store.update(partial(mark_success, sha=sha, at=now_utc()))
            if before.current_sha is not None and before.current_sha != sha:
                logger.info("Sync successful: %s (was %s)", sha, before.current_sha)
            else:
                logger.info("Sync successful: %s", sha)
            return sha

    async def run_forever(self, interval_seconds: float | None = None) -> None:
        """Sync on a fixed interval until cancelled. Failures are logged, never raised."""
        interval = (
            interval_seconds
            if interval_seconds is not None
            else self._settings.git_sync_interval_seconds
        )
        while True:
            try:
                await self.sync_once()
            except SyncError as exc:
                logger.error("Sync loop error: %s", self._git.redact(str(exc)))
            await asyncio.sleep(interval)
