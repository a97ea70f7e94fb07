"""Application-level exception types.

Convention:
- ``PathError`` subclasses: lexical rejections of client-supplied paths.
  Always client-caused; callers turn them into a 4xx response and never log
  them above DEBUG.
- ``SyncError`` subclasses: one per sync step. Operational; recorded into the
  status store and logged, never surfaced to HTTP clients directly.
- ``FileServeError`` subclasses: request-scoped file serving failures. The
  global handler in ``reposync/main.py`` returns ``status_code`` with the short
  ``detail`` label and nothing else.
"""

from __future__ import annotations


class PathError(ValueError):
    """A client-supplied relative path failed lexical validation."""


class PathEscapeError(PathError):
    """A ``..`` segment would move above the root."""


class AbsolutePathRejectedError(PathError):
    """The path is absolute or carries a drive/UNC prefix."""


class InvalidEncodingError(PathError):
    """The path is not valid text."""


class SyncError(Exception):
    """A sync attempt failed at ``step``."""

    step = "sync"

    def __str__(self) -> str:
        message = super().__str__()
        return f"{self.step} failed: {message}" if message else f"{self.step} failed"


class MirrorUnavailableError(SyncError):
    step = "mirror"


class CloneFailedError(SyncError):
    step = "clone"


class RemoteConfigError(SyncError):
    step = "configure-remote"


class FetchFailedError(SyncError):
    step = "fetch"


class ResetFailedError(SyncError):
    step = "reset"


class CleanFailedError(SyncError):
    step = "clean"


class EmptyCommitError(SyncError):
    step = "resolve-head"


class FileServeError(Exception):
    """A file request could not be served."""

    status_code = 500
    detail = "file serving failed"


class PathTooLongError(FileServeError):
    status_code = 414
    detail = "path too long"


class InvalidPathError(FileServeError):
    status_code = 403
    detail = "invalid path"


class MirrorFileNotFoundError(FileServeError):
    status_code = 404
    detail = "file not found"


class PayloadTooLargeError(FileServeError):
    status_code = 413
    detail = "file exceeds max size"


class ReadFailedError(FileServeError):
    status_code = 500
    detail = "failed to read file"
