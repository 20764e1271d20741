"""Per-lead mutation serialization."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class LeadMutationSerializer:
    """One outstanding mutation per lead; waiters run in arrival order."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiters: dict[int, int] = {}

    def is_busy(self, lead_id: int) -> bool:
        lock = self._locks.get(lead_id)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def hold(self, lead_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(lead_id, asyncio.Lock())
        self._waiters[lead_id] = self._waiters.get(lead_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[lead_id] -= 1
            if not self._waiters[lead_id]:
                del self._waiters[lead_id]
                self._locks.pop(lead_id, None)
