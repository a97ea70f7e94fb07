"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from reposync.config import Settings, redact_url


_ENV_KEYS = (
    "DEBUG",
    "GIT_REPO_URL",
    "GIT_BRANCH",
    "GIT_SYNC_INTERVAL_SECONDS",
    "GIT_TOKEN",
    "GIT_TIMEOUT_SECONDS",
    "INITIAL_SYNC_REQUIRED",
    "MIRROR_DIR",
    "SERVE_SUBDIR",
    "HOST",
    "PORT",
    "MAX_PATH_LENGTH",
    "MAX_FILE_SIZE_BYTES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.git_repo_url == ""
        assert s.git_branch == "main"
        assert s.git_sync_interval_seconds == 30
        assert s.git_token is None
        assert s.mirror_dir == Path("/data/repo")
        assert s.serve_subdir is None
        assert s.host == "0.0.0.0"
        assert s.port == 8080
        assert s.max_path_length == 512
        assert s.max_file_size_bytes == 10 * 1024 * 1024
        assert s.initial_sync_required is True
        assert s.debug is False

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("GIT_REPO_URL", "https://github.com/org/repo.git")
        monkeypatch.setenv("GIT_BRANCH", "release")
        monkeypatch.setenv("GIT_SYNC_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("MIRROR_DIR", str(tmp_path))
        monkeypatch.setenv("SERVE_SUBDIR", "configs")
        monkeypatch.setenv("MAX_FILE_SIZE_BYTES", "2048")
        s = Settings(_env_file=None)
        assert s.git_repo_url == "https://github.com/org/repo.git"
        assert s.git_branch == "release"
        assert s.git_sync_interval_seconds == 5
        assert s.mirror_dir == tmp_path
        assert s.serve_root == tmp_path / "configs"
        assert s.max_file_size_bytes == 2048

    def test_empty_env_values_fall_back_to_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GIT_BRANCH", "")
        monkeypatch.setenv("GIT_TOKEN", "")
        s = Settings(_env_file=None)
        assert s.git_branch == "main"
        assert s.token_value() is None

    @pytest.mark.parametrize("interval", [0, -1])
    def test_interval_must_be_positive(self, interval: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, git_sync_interval_seconds=interval)

    def test_max_path_length_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, max_path_length=0)

    @pytest.mark.parametrize("branch", ["  ", "--upload-pack=x"])
    def test_rejects_unsafe_branch(self, branch: str) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, git_branch=branch)


class TestServeSubdir:
    def test_normalizes_subdir(self, tmp_path: Path) -> None:
        s = Settings(_env_file=None, mirror_dir=tmp_path, serve_subdir="./public//assets/")
        assert s.serve_subdir == "public/assets"
        assert s.serve_root == tmp_path / "public" / "assets"

    def test_empty_subdir_is_mirror_root(self, tmp_path: Path) -> None:
        s = Settings(_env_file=None, mirror_dir=tmp_path, serve_subdir=".")
        assert s.serve_subdir is None
        assert s.serve_root == tmp_path

    @pytest.mark.parametrize("subdir", ["../outside", "/etc", "a/../../b"])
    def test_rejects_escaping_subdir(self, subdir: str) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, serve_subdir=subdir)


class TestSecrets:
    def test_token_hidden_from_repr(self) -> None:
        s = Settings(_env_file=None, git_token="ghp_topsecret")
        assert "ghp_topsecret" not in repr(s)
        assert "ghp_topsecret" not in str(s.model_dump())
        assert s.token_value() == "ghp_topsecret"

    def test_public_repo_url_strips_credentials(self) -> None:
        s = Settings(_env_file=None, git_repo_url="https://bob:pw@github.com/org/repo.git")
        assert s.public_repo_url == "https://***@github.com/org/repo.git"

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://github.com/org/repo.git", "https://github.com/org/repo.git"),
            ("https://tok@github.com/r.git", "https://***@github.com/r.git"),
            ("https://u:p@host:8443/r.git?x=1", "https://***@host:8443/r.git?x=1"),
            ("file:///srv/repo", "file:///srv/repo"),
        ],
    )
    def test_redact_url(self, url: str, expected: str) -> None:
        assert redact_url(url) == expected


class TestValidateRuntime:
    def test_requires_repo_url(self) -> None:
        with pytest.raises(ValueError, match="GIT_REPO_URL"):
            Settings(_env_file=None).validate_runtime()

    def test_accepts_configured_url(self) -> None:
        Settings(_env_file=None, git_repo_url="https://github.com/org/repo.git").validate_runtime()


class TestCliEntry:
    def test_cli_entry_uses_app_settings(self) -> None:
        """cli_entry() should use the global app's settings, not create a new Settings()."""
        from reposync.main import app, cli_entry

        original_settings = getattr(app.state, "settings", None)
        app.state.settings = Settings(_env_file=None, host="127.0.0.1", port=9999, debug=True)

        try:
            with patch("uvicorn.run") as mock_run:
                cli_entry()

            mock_run.assert_called_once_with(
                "reposync.main:app",
                host="127.0.0.1",
                port=9999,
                reload=True,
            )
        finally:
            if original_settings is None:
                del app.state.settings
            else:
                app.state.settings = original_settings
