from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from workforce_state.utils import normalize_agent_id


class AgentLockRegistry:
    """One asyncio.Lock per agent id so in-process writers to the same row never interleave."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, agent_id: str) -> asyncio.Lock:
        key = normalize_agent_id(agent_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, agent_id: str) -> AsyncIterator[None]:
        async with self.lock_for(agent_id):
            yield

    def __len__(self) -> int:
        return len(self._locks)
