"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reposync.exceptions import PathError
from reposync.filesystem.path_guard import normalize_relative_path


def redact_url(url: str) -> str:
    """Strip any userinfo (``user:secret@``) from ``url``."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, f"***@{host}", parts.path, parts.query, parts.fragment))


class Settings(BaseSettings):
    """reposync application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Git source
    git_repo_url: str = ""
    git_branch: str = "main"
    git_sync_interval_seconds: int = Field(default=30, gt=0)
    git_token: SecretStr | None = None
    git_timeout_seconds: float | None = Field(default=300.0, gt=0)
    initial_sync_required: bool = True

    # Paths
    mirror_dir: Path = Path("/data/repo")
    serve_subdir: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)

    # Serving limits
    max_path_length: int = Field(default=512, gt=0)
    max_file_size_bytes: int = Field(default=10 * 1024 * 1024, ge=0)

    @field_validator("git_branch")
    @classmethod
    def _check_branch(cls, value: str) -> str:
        value = value.strip()
        if not value or value.startswith("-"):
            msg = "GIT_BRANCH must be a non-empty branch name"
            raise ValueError(msg)
        return value

    @field_validator("serve_subdir")
    @classmethod
    def _check_serve_subdir(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            normalized = normalize_relative_path(value.strip())
        except PathError as exc:
            msg = f"SERVE_SUBDIR must be a safe relative path: {exc}"
            raise ValueError(msg) from None
        return normalized or None

    @property
    def serve_root(self) -> Path:
        """Directory that ``/files/`` requests are resolved against."""
        if self.serve_subdir:
            return self.mirror_dir.joinpath(*self.serve_subdir.split("/"))
        return self.mirror_dir

    @property
    def public_repo_url(self) -> str:
        """Repository URL with any embedded credentials removed."""
        return redact_url(self.git_repo_url)

    def token_value(self) -> str | None:
        """Return the access token, or None when not configured."""
        if self.git_token is None:
            return None
        return self.git_token.get_secret_value() or None

    def validate_runtime(self) -> None:
        """Validate settings that must be present before the service starts."""
        if not self.git_repo_url.strip():
            raise ValueError("GIT_REPO_URL must be configured")
