"""
Per-room asyncio locks serializing check -> persist -> reconcile.

Locks live in this process only, so the service runs as a single worker.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class RoomLockRegistry:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, room_id: str):
        key = str(room_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                # Nobody else holds or waits on it
                del self._waiters[key]
                del self._locks[key]

    def is_locked(self, room_id: str) -> bool:
        lock = self._locks.get(str(room_id))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
