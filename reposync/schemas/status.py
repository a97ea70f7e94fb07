"""Health, metadata and index response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict


class SyncStatusResponse(BaseModel):
    """Snapshot of the sync status record."""

    model_config = ConfigDict(from_attributes=True)

    current_sha: str | None = None
    previous_sha: str | None = None
    last_success_at: datetime | None = None
    last_attempt_at: datetime | None = None
    last_error: str | None = None


class HealthResponse(BaseModel):
    """Liveness/readiness response."""

    status: Literal["ok", "degraded"]
    current_sha: str | None
    last_success_at: datetime | None
    last_error: str | None


class MetaResponse(BaseModel):
    """Sync configuration plus the current status record."""

    synced_repo_url: str
    branch: str
    serve_root: str
    sync_interval_seconds: int
    now: datetime
    sync: SyncStatusResponse


class IndexResponse(BaseModel):
    """Service name and available endpoints."""

    name: str
    endpoints: list[str]
