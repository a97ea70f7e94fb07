"""Lexical path normalization for client-supplied relative paths.

Nothing here touches the filesystem: a path is accepted or rejected purely on
its text, so the same rules apply to request paths and to ``SERVE_SUBDIR``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from reposync.exceptions import (
    AbsolutePathRejectedError,
    InvalidEncodingError,
    PathEscapeError,
)

if TYPE_CHECKING:
    from pathlib import Path

# A bare drive segment ("C:") or a backslash drive path ("C:\windows").
_DRIVE_RE = re.compile(r"^[A-Za-z]:(\\|$)")


def _check_segment_text(segment: str) -> None:
    if "\x00" in segment:
        raise InvalidEncodingError("path contains a NUL character")
    try:
        segment.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidEncodingError("path contains invalid unicode") from None


def normalize_relative_path(value: str | bytes) -> str:
    """Normalize ``value`` into a relative ``/``-separated path.

    ``.`` segments and empty segments are dropped and each ``..`` removes the
    previously accepted segment. The result never starts with ``/`` and never
    contains ``.`` or ``..``; the empty string denotes the root itself.

    Raises:
        PathEscapeError: A ``..`` segment has nothing left to remove.
        AbsolutePathRejectedError: The path starts with ``/`` or a drive or
            UNC prefix.
        InvalidEncodingError: The path is not valid UTF-8 text.
    """
    if isinstance(value, bytes):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidEncodingError("path is not valid UTF-8") from None

    segments = value.split("/")
    first = segments[0]
    if value.startswith("/") or _DRIVE_RE.match(first) or first.startswith("\\\\"):
        raise AbsolutePathRejectedError("absolute paths are not allowed")

    normalized: list[str] = []
    for segment in segments:
        if segment in ("", "."):
            continue
        if segment == "..":
            if not normalized:
                raise PathEscapeError("path escapes root")
            normalized.pop()
            continue
        _check_segment_text(segment)
        normalized.append(segment)

    return "/".join(normalized)


def resolve_under_root(root: Path, request_path: str | bytes) -> Path:
    """Join the normalized ``request_path`` onto ``root``.

    The result is ``root`` itself or a lexical descendant of it.
    """
    normalized = normalize_relative_path(request_path)
    if not normalized:
        return root
    return root.joinpath(*normalized.split("/"))
