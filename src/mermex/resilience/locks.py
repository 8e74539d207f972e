"""Per-key async locks.

KeyedLock serializes critical sections that share a key while letting
different keys proceed concurrently. The export core keys it by output
directory, naming mode, target name and format so two jobs can never
scan the same directory and allocate the same output path.

Single-process only: the lock table lives in memory.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class KeyedLock:
    """Hands out one asyncio.Lock per key, created on demand.

    Usage::

        locks = KeyedLock()
        async with locks.hold(("out", "diagram", "svg")):
            ...

    Entries are dropped once no task holds or waits on them, so the
    table does not grow with the number of distinct keys seen.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}
        self._guard = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the duration of the block."""
        async with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.holders += 1

        try:
            async with entry.lock:
                yield
        finally:
            async with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._entries.pop(key, None)

    @property
    def active_keys(self) -> list[Hashable]:
        """Return keys currently held or awaited."""
        return list(self._entries.keys())
