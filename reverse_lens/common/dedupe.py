# Copyright (c) 2026 Heureum AI. All rights reserved.

"""In-flight request deduplication.

Concurrent searches for the same key share one provider call. A finished
call stays shared for a short cooldown so rapid repeats do not hit the
provider again.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestDeduplicator:
    """Share one in-flight coroutine per key between concurrent callers."""

    def __init__(self, cooldown: float = 2.0, max_pending_age: float = 30.0) -> None:
        """Initialize the deduplicator.

        Args:
            cooldown (float): Seconds a finished result keeps being shared.
            max_pending_age (float): Seconds after which an entry is replaced.
        """
        self._cooldown = cooldown
        self._max_pending_age = max_pending_age
        self._pending: dict[str, tuple[asyncio.Task, float]] = {}

    async def execute(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` for ``key`` unless a fresh call is already in flight.

        Args:
            key (str): Deduplication key, usually the cache key.
            fn (Callable[[], Awaitable[T]]): Factory for the work coroutine.

        Returns:
            T: The shared result. Exceptions are shared the same way.
        """
        now = time.monotonic()
        entry = self._pending.get(key)
        if entry is not None:
            task, started = entry
            if now - started < self._max_pending_age:
                logger.debug("Joining in-flight request for %s", key)
                return await asyncio.shield(task)
            del self._pending[key]

        task = asyncio.ensure_future(fn())
        self._pending[key] = (task, now)
        task.add_done_callback(lambda t: self._schedule_release(key, t))
        return await asyncio.shield(task)

    def is_pending(self, key: str) -> bool:
        """Return True if a fresh entry exists for ``key``."""
        entry = self._pending.get(key)
        if entry is None:
            return False
        return time.monotonic() - entry[1] < self._max_pending_age

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        """Forget all entries without cancelling running work."""
        self._pending.clear()

    def _schedule_release(self, key: str, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None or self._cooldown <= 0:
            self._release(key, task)
            return
        asyncio.get_running_loop().call_later(self._cooldown, self._release, key, task)

    def _release(self, key: str, task: Any) -> None:
        entry = self._pending.get(key)
        if entry is not None and entry[0] is task:
            del self._pending[key]
