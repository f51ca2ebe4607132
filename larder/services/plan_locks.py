from __future__ import annotations

import asyncio
import datetime as dt
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple


class PlanMutationQueue:
    """Serialises read-modify-write cycles on a meal plan within one process.

    Plans are written without compare-and-swap, so two writers in different
    processes can still overwrite each other.
    """

    def __init__(self) -> None:
        self._locks: Dict[Tuple[str, dt.date], asyncio.Lock] = {}
        self._waiters: Dict[Tuple[str, dt.date], int] = {}

    @asynccontextmanager
    async def hold(self, user_id: str, week_start: dt.date) -> AsyncIterator[None]:
        key = (user_id, week_start)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                self._waiters.pop(key, None)
                self._locks.pop(key, None)

    def pending(self, user_id: str, week_start: dt.date) -> int:
        return self._waiters.get((user_id, week_start), 0)
