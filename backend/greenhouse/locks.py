"""Key-scoped asyncio locks for read-then-write sections of the monitor."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLocks:
    """Hands out one asyncio.Lock per key, e.g. per (device_id, sensor_type)."""

    def __init__(self):
        # Map of key -> asyncio.Lock serializing writers for that key
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._lock = asyncio.Lock()

    async def _get_lock(self, key: Hashable) -> asyncio.Lock:
        """Get or create the Lock for the given key."""
        async with self._lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Serialize the enclosed block against other holders of ``key``."""
        lock = await self._get_lock(key)
        async with lock:
            yield

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
