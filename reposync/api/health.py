"""Health, metadata and index endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from reposync.api.deps import get_settings, get_status_store
from reposync.config import Settings
from reposync.schemas.status import (
    HealthResponse,
    IndexResponse,
    MetaResponse,
    SyncStatusResponse,
)
from reposync.services.datetime_service import now_utc
from reposync.services.status_store import StatusStore

router = APIRouter(tags=["health"])


@router.get("/", response_model=IndexResponse)
async def index() -> IndexResponse:
    """List the service endpoints."""
    return IndexResponse(name="reposync", endpoints=["/health", "/meta", "/files/{path}"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: Annotated[StatusStore, Depends(get_status_store)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers.

    Reports ``degraded`` only while no sync has ever succeeded and the last
    attempt failed; a later failure after a success still serves the last
    good mirror, so the service stays ``ok``.
    """
    status = await store.read()
    degraded = status.last_error is not None and status.last_success_at is None
    return HealthResponse(
        status="degraded" if degraded else "ok",
        current_sha=status.current_sha,
        last_success_at=status.last_success_at,
        last_error=status.last_error,
    )


@router.get("/meta", response_model=MetaResponse)
async def meta(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[StatusStore, Depends(get_status_store)],
) -> MetaResponse:
    """Sync configuration and the full status record."""
    status = await store.read()
    return MetaResponse(
        synced_repo_url=settings.public_repo_url,
        branch=settings.git_branch,
        serve_root=str(settings.serve_root),
        sync_interval_seconds=settings.git_sync_interval_seconds,
        now=now_utc(),
        sync=SyncStatusResponse.model_validate(status),
    )
