"""
Async wrapper around TrackedOrderStore.

File IO runs in the default executor; an `asyncio.Lock` keeps a single writer
so saves never interleave with loads or cleanup.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional

from dexbot.core.models import TrackedOrder
from dexbot.state.store import TrackedOrderStore


class AtomicTrackedOrderStore:
    def __init__(self, state_dir: Optional[str], instance_id: Optional[str]) -> None:
        self._store = TrackedOrderStore(state_dir, instance_id)
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self._store.enabled

    @property
    def path(self):
        return self._store.path

    async def load(self) -> List[TrackedOrder]:
        async with self._lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._store.load)

    async def save(self, strategy_key: str, orders: Iterable[TrackedOrder]) -> None:
        snapshot = list(orders)
        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: self._store.save(strategy_key, snapshot))

    async def cleanup(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._store.cleanup)
