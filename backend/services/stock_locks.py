"""In-process critical sections keyed by stock counters.

Decrements touching overlapping counters are serialized here before they
reach the database; the database side (SELECT ... FOR UPDATE plus a
conditional UPDATE) covers writers in other processes.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Iterable, List, Tuple


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        # holders plus waiters; the entry is dropped when it reaches zero
        self.users = 0


class StockLockRegistry:
    def __init__(self):
        # asyncio.Lock binds to the loop it first waits on, so keep one table per loop.
        self._by_loop: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Hashable, _LockEntry]]" = (
            weakref.WeakKeyDictionary()
        )

    def _entries(self) -> Dict[Hashable, _LockEntry]:
        loop = asyncio.get_running_loop()
        table = self._by_loop.get(loop)
        if table is None:
            table = {}
            self._by_loop[loop] = table
        return table

    def __len__(self) -> int:
        """Number of keys currently held or waited on in the running loop."""
        return len(self._entries())

    @asynccontextmanager
    async def hold(self, keys: Iterable[Hashable]) -> AsyncIterator[None]:
        """Acquire every key's lock in sorted order; released in reverse."""
        table = self._entries()
        ordered = sorted(set(keys), key=str)
        registered: List[Tuple[Hashable, _LockEntry]] = []
        acquired: List[_LockEntry] = []
        try:
            for key in ordered:
                entry = table.get(key)
                if entry is None:
                    entry = _LockEntry()
                    table[key] = entry
                entry.users += 1
                registered.append((key, entry))
                await entry.lock.acquire()
                acquired.append(entry)
            yield
        finally:
            for entry in reversed(acquired):
                entry.lock.release()
            for key, entry in registered:
                entry.users -= 1
                if entry.users == 0 and table.get(key) is entry:
                    del table[key]


stock_locks = StockLockRegistry()
