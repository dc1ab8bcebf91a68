"""adcache — In-Flight Request Deduplication.

Concurrent callers asking for the same key while a fetch is outstanding
await the same task instead of starting another upstream call.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict


class InFlightRequests:
    """Pending-request map keyed by cache key."""

    def __init__(self):
        self._pending: Dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._pending[key] = task
            task.add_done_callback(lambda done: self._release(key, done))
        # One caller being cancelled must not cancel the shared fetch
        return await asyncio.shield(task)

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
