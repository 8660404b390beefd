"""Per-key locks local to this process"""

import asyncio
import contextlib
import logging
import weakref
from typing import Hashable, Iterable

from services.errors import LockTimeout

logger = logging.getLogger("friendgraph.locks")


class KeyedLocks:
    """Serializes writers of the same keys within one service instance.

    Locks are kept only while somebody holds a reference to them, so the
    registry never grows past the keys currently in flight. Keys are always
    acquired in sorted order to avoid deadlocks between overlapping commands.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self):
        return len(self._locks)

    @contextlib.asynccontextmanager
    async def hold(self, keys: Iterable[Hashable], timeout: float):
        """Acquire every key, raising LockTimeout if that takes too long"""
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        async with contextlib.AsyncExitStack() as stack:
            try:
                async with asyncio.timeout(timeout):
                    for lock in locks:
                        await stack.enter_async_context(lock)
            except TimeoutError as e:
                raise LockTimeout(len(locks), timeout) from e
            yield
