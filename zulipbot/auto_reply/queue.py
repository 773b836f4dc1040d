"""
Delivery queues for ZulipBot auto-reply.

Provides:
- Strict FIFO ordering of sends per destination
- Failure isolation (a failed job never blocks the next one)
- Automatic cleanup of idle destinations
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger


T = TypeVar("T")


class DeliveryQueue:
    """
    Serializes send jobs for a single destination.

    Jobs run one at a time in the order they were enqueued, whether
    earlier jobs succeeded or raised.
    """

    def __init__(self, key: str):
        self.key = key
        self._lock = asyncio.Lock()
        self._pending = 0
        self._completed = 0
        self._failed = 0

    async def enqueue(self, job: Callable[[], Awaitable[T]]) -> T:
        """
        Run a job after every previously enqueued job has settled.

        Args:
            job: Zero-argument coroutine function performing the send.

        Returns:
            The job's result. Exceptions from the job propagate to this caller only.
        """
        self._pending += 1
        try:
            async with self._lock:
                try:
                    result = await job()
                except Exception:
                    self._failed += 1
                    raise
                self._completed += 1
                return result
        finally:
            self._pending -= 1

    @property
    def is_idle(self) -> bool:
        return self._pending == 0

    @property
    def size(self) -> int:
        """Jobs running or waiting."""
        return self._pending

    def get_stats(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "pending": self._pending,
            "completed": self._completed,
            "failed": self._failed,
        }


class DeliveryQueues:
    """Registry of per-destination delivery queues."""

    def __init__(self):
        self._queues: dict[str, DeliveryQueue] = {}

    def get(self, key: str) -> DeliveryQueue:
        queue = self._queues.get(key)
        if queue is None:
            queue = DeliveryQueue(key)
            self._queues[key] = queue
        return queue

    async def run(self, key: str, job: Callable[[], Awaitable[T]]) -> T:
        """Enqueue a job on the destination's queue and wait for it."""
        queue = self.get(key)
        try:
            return await queue.enqueue(job)
        finally:
            if queue.is_idle and self._queues.get(key) is queue:
                del self._queues[key]
                logger.debug(f"Delivery queue for {key} idle, discarded")

    def __len__(self) -> int:
        return len(self._queues)

    def get_stats(self) -> dict[str, Any]:
        return {
            "active_destinations": len(self._queues),
            "queues": [q.get_stats() for q in self._queues.values()],
        }


# Global registry shared by every account in the process
_delivery_queues: DeliveryQueues | None = None


def get_delivery_queues() -> DeliveryQueues:
    """Get the process-wide delivery queue registry."""
    global _delivery_queues
    if _delivery_queues is None:
        _delivery_queues = DeliveryQueues()
    return _delivery_queues
