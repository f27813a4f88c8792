"""
Per-user update locks.

Progress updates for one user run one at a time inside this process;
updates for different users never wait on each other. Cross-process
serialization comes from the repository's row lock on the aggregate.

Usage:
    async with user_locks.hold(user_id):
        ...
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class UserLockRegistry:
    """
    Lazily created asyncio.Lock per user id.

    A lock is dropped once nobody holds or waits on it, so the registry
    only grows with the number of users currently updating. Dict updates
    happen without awaiting, so they are atomic on the event loop.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, user_id: str) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._holders[user_id] = self._holders.get(user_id, 0) + 1
        try:
            if lock.locked():
                logger.debug(f"Waiting for progress lock of user {user_id}")
            async with lock:
                yield
        finally:
            self._holders[user_id] -= 1
            if self._holders[user_id] == 0:
                del self._holders[user_id]
                del self._locks[user_id]


# Shared by every orchestrator in the process
user_locks = UserLockRegistry()
