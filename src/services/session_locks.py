"""
Per-session mutual exclusion.

At most one turn (or end) runs per session at a time; different sessions
never contend. Locks are created on demand and dropped once no task holds
or waits on them, so the registry does not grow with the number of
sessions ever seen.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

log = structlog.get_logger(__name__)


class SessionLockRegistry:
    """Reference-counted asyncio locks keyed by session id."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refs: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``session_id`` for the duration of the block."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        self._refs[session_id] = self._refs.get(session_id, 0) + 1

        if lock.locked():
            log.debug("session_lock_wait", session_id=session_id)

        try:
            async with lock:
                yield
        finally:
            self._refs[session_id] -= 1
            if self._refs[session_id] == 0:
                del self._refs[session_id]
                del self._locks[session_id]

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
