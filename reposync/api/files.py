"""Mirrored file serving endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Response, status

from reposync.api.deps import get_settings
from reposync.config import Settings
from reposync.filesystem.mirror_files import is_not_modified, read_mirror_file
from reposync.services.datetime_service import format_http_date

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/{file_path:path}")
def serve_file(
    file_path: str,
    settings: Annotated[Settings, Depends(get_settings)],
    if_none_match: Annotated[str | None, Header()] = None,
) -> Response:
    """Serve a file from the mirror's serving root.

    Runs in the threadpool: the file is read and hashed on every request.
    Errors are ``FileServeError`` subclasses, turned into responses by the
    handler registered in ``create_app``.
    """
    mirror_file = read_mirror_file(
        settings.serve_root,
        file_path,
        max_path_length=settings.max_path_length,
        max_file_size=settings.max_file_size_bytes,
    )

    headers = {"ETag": mirror_file.etag}
    if is_not_modified(mirror_file, if_none_match):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    # Set directly: media_type would append a charset to text/* types.
    headers["Content-Type"] = mirror_file.content_type
    if mirror_file.last_modified is not None:
        headers["Last-Modified"] = format_http_date(mirror_file.last_modified)
    return Response(
        content=mirror_file.content,
        headers=headers,
    )
