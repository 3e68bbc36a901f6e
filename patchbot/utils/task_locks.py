"""
Per-task locks.

Runs that share a task id write into the same output namespace. When
serialization is enabled, ``hold(task_id)`` gives one asyncio.Lock per task
id so the second run waits for the first to finish extracting. When it is
disabled, ``hold`` is a no-op and the latest run directory wins.
"""
import asyncio
import contextlib
import logging
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class TaskLockRegistry:

    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, task_id: str) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[task_id] = lock
        return lock

    def is_held(self, task_id: str) -> bool:
        lock = self._locks.get(task_id)
        return lock is not None and lock.locked()

    @contextlib.asynccontextmanager
    async def hold(self, task_id: str) -> AsyncIterator[None]:
        if not self.enabled:
            yield
            return

        lock = self._lock_for(task_id)
        if lock.locked():
            logger.info("Task %s already running, waiting for it to finish", task_id)
        async with lock:
            yield
