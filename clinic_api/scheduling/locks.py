"""
Per-professional serialization of booking writes.

Within one process, every check-then-write for a professional runs under that
professional's ``asyncio.Lock``. Across processes the repository additionally
takes a transaction-scoped Postgres advisory lock, and the bookings table
carries an exclusion constraint as the last line.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class ProfessionalLockRegistry:
    """Hands out one lock per professional id; unused locks are collected."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def get(self, professional_id: str) -> asyncio.Lock:
        key = str(professional_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, professional_id: str) -> AsyncIterator[None]:
        lock = self.get(professional_id)
        if lock.locked():
            logger.debug(f"Waiting for booking lock of professional {professional_id}")
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


professional_locks = ProfessionalLockRegistry()
