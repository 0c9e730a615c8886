"""Per-key asyncio locks.

Serializes all writers of one key (an asset id, a register name) while
leaving unrelated keys free to interleave.
"""

import asyncio
from collections.abc import Hashable


class KeyedLock:
    """Lazily created asyncio.Lock per key.

    Usage:
        locks = KeyedLock()
        async with locks(asset_id):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def __call__(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
