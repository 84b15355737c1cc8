"""Per-organization mutual exclusion for sync and reset runs.

Locks are process-local asyncio locks keyed by organization code; a
single-instance deployment is assumed. Acquisition never waits: a second
caller for a code that is already running gets SyncInProgressError.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog

from src.partner_sync.errors import SyncInProgressError

logger = structlog.get_logger(__name__)


class OrganizationLocks:
    """Registry of asyncio locks, one per organization code."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, organization_code: str) -> AsyncIterator[None]:
        """Hold the organization's lock for the duration of the block.

        Raises:
            SyncInProgressError: The lock is already held.
        """
        lock = self._locks.setdefault(organization_code, asyncio.Lock())
        if lock.locked():
            logger.warning("sync.lock_busy", organization_code=organization_code)
            raise SyncInProgressError(organization_code)
        # Uncontended, so this returns without yielding to another task
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
