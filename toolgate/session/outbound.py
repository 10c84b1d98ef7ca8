"""Bounded per-session FIFO of serialized responses.

Producers never block: when the queue is full the configured overflow policy
decides what is lost. The push-stream transport keeps what is already queued
and drops the newcomer; the polling transport favours recency and evicts the
oldest pending message to admit the newest.
"""

from __future__ import annotations

import asyncio
from enum import Enum

DEFAULT_QUEUE_SIZE = 100


class OverflowPolicy(str, Enum):
    DROP_NEWEST = "drop_newest"
    EVICT_OLDEST = "evict_oldest"


class OfferOutcome(str, Enum):
    ENQUEUED = "enqueued"
    DROPPED = "dropped"
    EVICTED_OLDEST = "evicted_oldest"


class OutboundQueue:
    """asyncio.Queue wrapper applying an explicit overflow policy."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE, policy: OverflowPolicy = OverflowPolicy.DROP_NEWEST):
        self.policy = policy
        self._queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=maxsize if maxsize > 0 else DEFAULT_QUEUE_SIZE)

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()

    def offer(self, message: bytes) -> OfferOutcome:
        """Enqueue without blocking, applying the overflow policy when full."""
        try:
            self._queue.put_nowait(message)
            return OfferOutcome.ENQUEUED
        except asyncio.QueueFull:
            if self.policy is OverflowPolicy.DROP_NEWEST:
                return OfferOutcome.DROPPED
        try:
            self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        self._queue.put_nowait(message)
        return OfferOutcome.EVICTED_OLDEST

    async def get(self) -> bytes:
        return await self._queue.get()

    def get_nowait(self) -> bytes | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> list[bytes]:
        """Remove and return everything currently queued, oldest first."""
        items: list[bytes] = []
        while True:
            item = self.get_nowait()
            if item is None:
                return items
            items.append(item)
