"""Shared API dependencies: settings and the sync status store."""

from __future__ import annotations

from fastapi import Request

from reposync.config import Settings
from reposync.services.status_store import StatusStore


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_status_store(request: Request) -> StatusStore:
    """Get the sync status store from app state."""
    store: StatusStore = request.app.state.status_store
    return store
