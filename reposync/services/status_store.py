"""Sync status record and its reader/writer-locked store."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable
    from datetime import datetime


@dataclass(frozen=True)
class SyncStatus:
    """State of the mirror as last observed by the sync engine."""

    current_sha: str | None = None
    previous_sha: str | None = None
    last_success_at: datetime | None = None
    last_attempt_at: datetime | None = None
    last_error: str | None = None


def mark_attempt(status: SyncStatus, at: datetime) -> SyncStatus:
    """Record that an attempt started; nothing else changes."""
    return replace(status, last_attempt_at=at)


def mark_success(status: SyncStatus, sha: str, at: datetime) -> SyncStatus:
    """Record a successful sync to ``sha``.

    ``previous_sha`` only moves when the commit actually changed.
    """
    previous = status.previous_sha
    if status.current_sha != sha:
        previous = status.current_sha
    return replace(
        status,
        current_sha=sha,
        previous_sha=previous,
        last_success_at=at,
        last_error=None,
    )


def mark_failure(status: SyncStatus, message: str) -> SyncStatus:
    """Record a failed sync, leaving the commit fields untouched."""
    return replace(status, last_error=message)


class _ReadWriteLock:
    """Asyncio lock admitting many readers or one writer.

    Waiting writers do not block new readers; write sections are expected to
    be a single assignment, so readers are never held up for long.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writing = False

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def writing(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writing and self._readers == 0)
            self._writing = True
        try:
            yield
        finally:
            async with self._cond:
                self._writing = False
                self._cond.notify_all()


class StatusStore:
    """Holds the current ``SyncStatus``.

    The sync engine is the only writer; the HTTP layer reads snapshots.
    ``update`` callbacks must be pure: all I/O happens before or after the
    write lock is held, never during.
    """

    def __init__(self, initial: SyncStatus | None = None) -> None:
        self._status = initial if initial is not None else SyncStatus()
        self._lock = _ReadWriteLock()

    async def read(self) -> SyncStatus:
        """Return a snapshot of the current status."""
        async with self._lock.reading():
            return self._status

    async def update(self, fn: Callable[[SyncStatus], SyncStatus]) -> SyncStatus:
        """Replace the status with ``fn(current)`` and return the new value."""
        async with self._lock.writing():
            self._status = fn(self._status)
            return self._status
