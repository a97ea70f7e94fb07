"""Reads mirrored files for the ``/files`` endpoint.

Every request re-reads and re-hashes the file: the sync engine can replace
contents at any time, so nothing is cached between requests.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import stat
from dataclasses import dataclass
from typing import TYPE_CHECKING

from reposync.exceptions import (
    InvalidPathError,
    MirrorFileNotFoundError,
    PathError,
    PathTooLongError,
    PayloadTooLargeError,
    ReadFailedError,
)
from reposync.filesystem.path_guard import resolve_under_root
from reposync.services.datetime_service import from_timestamp

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class MirrorFile:
    """A file read from the mirror, with its cache validators."""

    content: bytes
    content_type: str
    etag: str
    last_modified: datetime | None


def compute_etag(content: bytes) -> str:
    """Return the quoted SHA-256 hex digest of ``content``."""
    return f'"{hashlib.sha256(content).hexdigest()}"'


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or DEFAULT_CONTENT_TYPE


def _within_root(path: Path, serve_root: Path) -> bool:
    """Whether ``path`` still lies under ``serve_root`` once symlinks are followed."""
    try:
        return path.resolve().is_relative_to(serve_root.resolve())
    except (OSError, RuntimeError):
        return False


def _last_modified(mtime: float) -> datetime | None:
    try:
        return from_timestamp(mtime)
    except (OverflowError, OSError, ValueError):
        return None


def _read_capped(path: Path, limit: int) -> bytes:
    """Read at most ``limit + 1`` bytes so growth past ``limit`` is detectable."""
    with open(path, "rb") as f:
        return f.read(limit + 1)


def read_mirror_file(
    serve_root: Path,
    raw_path: str,
    *,
    max_path_length: int,
    max_file_size: int,
) -> MirrorFile:
    """Resolve ``raw_path`` under ``serve_root`` and read it.

    Raises:
        PathTooLongError: ``raw_path`` is longer than ``max_path_length`` UTF-8 bytes.
        InvalidPathError: ``raw_path`` fails path normalization.
        MirrorFileNotFoundError: Missing, not a regular file, or a symlink
            leading outside ``serve_root``.
        PayloadTooLargeError: The file is larger than ``max_file_size``.
        ReadFailedError: The file exists but could not be read.
    """
    if len(raw_path.encode("utf-8", "surrogatepass")) > max_path_length:
        raise PathTooLongError

    try:
        file_path = resolve_under_root(serve_root, raw_path)
    except PathError as exc:
        logger.debug("Rejected path %r: %s", raw_path, exc)
        raise InvalidPathError from exc

    try:
        st = file_path.stat()
    except (FileNotFoundError, NotADirectoryError):
        raise MirrorFileNotFoundError from None
    except OSError as exc:
        logger.warning("Failed to stat %s: %s", file_path, exc)
        raise MirrorFileNotFoundError from exc

    if not stat.S_ISREG(st.st_mode) or not _within_root(file_path, serve_root):
        raise MirrorFileNotFoundError
    if st.st_size > max_file_size:
        raise PayloadTooLargeError

    try:
        content = _read_capped(file_path, max_file_size)
    except (FileNotFoundError, NotADirectoryError):
        raise MirrorFileNotFoundError from None
    except OSError as exc:
        logger.error("Failed to read %s: %s", file_path, exc)
        raise ReadFailedError from exc
    if len(content) > max_file_size:
        raise PayloadTooLargeError

    return MirrorFile(
        content=content,
        content_type=guess_content_type(file_path),
        etag=compute_etag(content),
        last_modified=_last_modified(st.st_mtime),
    )


def is_not_modified(mirror_file: MirrorFile, if_none_match: str | None) -> bool:
    """Whether the client's ``If-None-Match`` value equals the file's ETag exactly."""
    return if_none_match is not None and if_none_match == mirror_file.etag

