"""Per-key asyncio locks.

Locks are held weakly: once no coroutine holds or waits on a key's lock, it is
garbage-collected, so idle assessment ids cost nothing.

The locks serialize coroutines within one process only. Across workers sharing
PostgreSQL, the assessment version counter in nutribot.storage.sql rejects a
stale save with ConcurrentUpdateError instead.

Usage:
    locks = KeyedLock()
    async with locks(assessment_id):
        ...
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


class KeyedLock:
    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Any, asyncio.Lock] = weakref.WeakValueDictionary()

    def _get(self, key: Any) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def __call__(self, key: Any) -> AsyncIterator[None]:
        lock = self._get(key)  # strong reference for the duration
        async with lock:
            yield
