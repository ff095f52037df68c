"""
Per-key asyncio locks.

Every state-machine operation holds the lock of the entity it mutates, so
two coroutines can never interleave a read-modify-write on the same lead,
quote, order or account inside one process.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLocks:
    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # Nobody is waiting, drop the lock so the registry stays small
                del self._holders[key]
                del self._locks[key]


def entity_key(collection: str, entity_id: str) -> str:
    return f"{collection}:{entity_id}"
