"""Git service: mirror working-directory operations via the git CLI."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from typing import TYPE_CHECKING

from reposync.config import redact_url

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_COMMIT_RE = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")
_URL_USERINFO_RE = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.-]*://)[^/@\s]+@")
_GIT_TIMEOUT_SECONDS = 300.0
_TOKEN_ENV = "REPOSYNC_GIT_TOKEN"
_TOKEN_USERNAME = "x-access-token"
# Reads the token from the child environment so it never lands in argv or .git/config.
_CREDENTIAL_HELPER = (
    f'!f() {{ test "$1" = get || exit 0; '
    f'echo "username={_TOKEN_USERNAME}"; echo "password=${_TOKEN_ENV}"; }}; f'
)
# Keep operator-level config (hooks, askpass prompts) out of the mirror.
_ISOLATED_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_CONFIG_NOSYSTEM": "1",
}
_INHERITED_GIT_VARS = (
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "GIT_OBJECT_DIRECTORY",
    "GIT_ALTERNATE_OBJECT_DIRECTORIES",
    "GIT_COMMON_DIR",
    "GIT_PREFIX",
    "GIT_CEILING_DIRECTORIES",
)


class GitCommandError(Exception):
    """A git invocation failed, timed out, or git is missing.

    The message has credentials redacted and is safe to log or record.
    """

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class GitService:
    """Wraps git CLI operations on the mirror working directory."""

    def __init__(
        self,
        work_dir: Path,
        token: str | None = None,
        timeout: float | None = _GIT_TIMEOUT_SECONDS,
    ) -> None:
        self.work_dir = work_dir
        self._token = token
        self._timeout = timeout

    def redact(self, text: str) -> str:
        """Remove the token and any URL userinfo from ``text``."""
        if self._token:
            text = text.replace(self._token, "***")
        return _URL_USERINFO_RE.sub(r"\g<scheme>***@", text)

    def _env(self) -> dict[str, str]:
        env = {k: v for k, v in os.environ.items() if k not in _INHERITED_GIT_VARS}
        env.update(_ISOLATED_ENV)
        if self._token:
            env[_TOKEN_ENV] = self._token
        return env

    def _auth_args(self) -> list[str]:
        if not self._token:
            return []
        # The empty helper resets any inherited helpers before ours.
        return ["-c", "credential.helper=", "-c", f"credential.helper={_CREDENTIAL_HELPER}"]

    def _run(
        self,
        *args: str,
        cwd: Path | None = None,
        check: bool = True,
        auth: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run a git command in the mirror directory (or ``cwd``)."""
        cmd = ["git", *(self._auth_args() if auth else []), *args]
        shown = self.redact(" ".join(["git", *args]))
        logger.debug("Running %s", shown)
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd or self.work_dir,
                env=self._env(),
                check=False,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitCommandError(f"{shown} timed out after {self._timeout}s") from None
        except FileNotFoundError:
            raise GitCommandError("git executable not found") from None
        except OSError as exc:
            raise GitCommandError(f"{shown} could not start: {exc.strerror}") from None

        if check and result.returncode != 0:
            detail = (result.stderr or result.stdout).strip() or "no output"
            raise GitCommandError(
                f"{shown} exited with {result.returncode}: {self.redact(detail)}",
                returncode=result.returncode,
            )
        return result

    def has_metadata(self) -> bool:
        """Whether the mirror directory carries a ``.git`` entry."""
        return (self.work_dir / ".git").exists()

    def is_repository(self) -> bool:
        """Whether git recognises the mirror directory as a work tree root."""
        result = self._run("rev-parse", "--show-prefix", check=False)
        return result.returncode == 0 and result.stdout.strip() == ""

    def clone(self, repo_url: str, branch: str) -> None:
        """Clone ``branch`` of ``repo_url`` into the mirror directory."""
        logger.info("Cloning %s (%s) into %s", redact_url(repo_url), branch, self.work_dir)
        self._run(
            "clone",
            "--branch",
            branch,
            "--single-branch",
            "--no-tags",
            "--",
            repo_url,
            str(self.work_dir),
            cwd=self.work_dir.parent,
            auth=True,
        )

    def remote_url(self, name: str) -> str | None:
        """Return the URL of remote ``name``, or None if it isn't configured."""
        result = self._run("remote", "get-url", name, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip()

    def set_remote(self, name: str, url: str) -> None:
        """Point remote ``name`` at ``url``, creating the remote if needed."""
        if self.remote_url(name) is None:
            self._run("remote", "add", name, url)
        else:
            self._run("remote", "set-url", name, url)

    def fetch_branch(self, remote: str, branch: str) -> None:
        """Fetch only ``branch`` into ``refs/remotes/<remote>/<branch>``, pruning stale refs."""
        refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
        self._run("fetch", "--prune", "--no-tags", remote, refspec, auth=True)

    def hard_reset(self, branch: str, target: str) -> None:
        """Force local ``branch`` and the work tree to ``target``, discarding local changes."""
        self._run("checkout", "--force", "-B", branch, target)
        self._run("reset", "--hard", target)

    def clean_untracked(self) -> None:
        """Delete untracked and ignored files and directories, nested repos included."""
        self._run("clean", "-ffdx")

    def head_commit(self) -> str | None:
        """Return the current HEAD commit hash, or None if it cannot be resolved."""
        result = self._run("rev-parse", "--verify", "HEAD", check=False)
        if result.returncode != 0:
            return None
        sha = result.stdout.strip()
        if not _COMMIT_RE.match(sha):
            return None
        return sha
