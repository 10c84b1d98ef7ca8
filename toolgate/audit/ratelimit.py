"""In-memory token-bucket rate limiter for mutating capability calls."""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from toolgate.utils.exceptions import RateLimitError

DEFAULT_REQUESTS_PER_SECOND = 100.0
DEFAULT_BURST_SIZE = 200

WAIT_POLL_INTERVAL_SECONDS = 0.1
WAIT_CEILING_SECONDS = 10.0


@dataclass
class RateLimiterState:
    available_tokens: float
    capacity: float
    refill_rate: float
    last_refill: float


class TokenBucketRateLimiter:
    """Token bucket: lazily refilled by elapsed time, never blocks on allow()."""

    def __init__(
        self,
        *,
        requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND,
        burst_size: int = DEFAULT_BURST_SIZE,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        capacity = float(burst_size) if burst_size > 0 else float(DEFAULT_BURST_SIZE)
        rate = float(requests_per_second) if requests_per_second > 0 else DEFAULT_REQUESTS_PER_SECOND
        self._clock = clock
        self._enabled = enabled
        self._lock = threading.Lock()
        self._state = RateLimiterState(
            available_tokens=capacity,
            capacity=capacity,
            refill_rate=rate,
            last_refill=clock(),
        )

    @classmethod
    def from_config(cls, audit_config: Any, **kwargs: Any) -> "TokenBucketRateLimiter":
        return cls(
            requests_per_second=audit_config.rate_limit_rps,
            burst_size=audit_config.rate_limit_burst,
            enabled=audit_config.rate_limit_enabled,
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _refill(self) -> None:
        # Caller holds self._lock.
        now = self._clock()
        state = self._state
        elapsed = max(0.0, now - state.last_refill)
        state.last_refill = now
        state.available_tokens = min(state.capacity, state.available_tokens + elapsed * state.refill_rate)

    def allow(self) -> bool:
        """Take one token if available."""
        return self.allow_n(1)

    def allow_n(self, n: int) -> bool:
        """Take n tokens atomically, or none."""
        if not self._enabled:
            return True
        with self._lock:
            self._refill()
            needed = float(n)
            if self._state.available_tokens >= needed:
                self._state.available_tokens -= needed
                return True
            return False

    def wait(self, *, sleep: Callable[[float], None] = time.sleep) -> None:
        """Block until admitted, polling for at most WAIT_CEILING_SECONDS."""
        if not self._enabled:
            return
        for _ in range(int(WAIT_CEILING_SECONDS / WAIT_POLL_INTERVAL_SECONDS)):
            if self.allow():
                return
            sleep(WAIT_POLL_INTERVAL_SECONDS)
        raise RateLimitError("write operations", retry_after=WAIT_POLL_INTERVAL_SECONDS)

    async def wait_async(self) -> None:
        """Event-loop friendly variant of wait()."""
        if not self._enabled:
            return
        for _ in range(int(WAIT_CEILING_SECONDS / WAIT_POLL_INTERVAL_SECONDS)):
            if self.allow():
                return
            await asyncio.sleep(WAIT_POLL_INTERVAL_SECONDS)
        raise RateLimitError("write operations", retry_after=WAIT_POLL_INTERVAL_SECONDS)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            self._refill()
            return {
                "enabled": self._enabled,
                "available_tokens": self._state.available_tokens,
                "max_tokens": self._state.capacity,
                "refill_rate": self._state.refill_rate,
            }
