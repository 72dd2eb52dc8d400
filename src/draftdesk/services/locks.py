"""
Keyed asyncio locks.

One lock per key, usually a project id. Locks are held
weakly: an entry disappears once no coroutine holds or waits on it.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Hashable


class KeyedLocks:
    """
    Per-key mutual exclusion within one process.

    Usage::

        locks = KeyedLocks()
        async with locks.acquire(project_id):
            ...
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def acquire(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


# Process-wide registries: every service instance must share them
version_number_locks = KeyedLocks()
aggregate_locks = KeyedLocks()
