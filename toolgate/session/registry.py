"""In-memory session registry: the single source of truth for live session ids.

One registry per HTTP transport instance; sessions are never shared across
transport kinds. Every operation takes the registry's own lock and is O(1)
except `sweep`, which scans the live set.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable

from toolgate.session.outbound import DEFAULT_QUEUE_SIZE, OutboundQueue, OverflowPolicy


@dataclass
class Session:
    """A transport-scoped client session."""

    id: str
    transport_kind: str
    outbound: OutboundQueue
    created_at: float
    last_activity: float
    closed: asyncio.Event = field(default_factory=asyncio.Event)

    def close(self) -> None:
        self.closed.set()

    @property
    def is_closed(self) -> bool:
        return self.closed.is_set()


class SessionRegistry:
    """Tracks live sessions for one transport adapter."""

    def __init__(
        self,
        transport_kind: str,
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        overflow_policy: OverflowPolicy = OverflowPolicy.DROP_NEWEST,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport_kind = transport_kind
        self._queue_size = queue_size
        self._overflow_policy = overflow_policy
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    @property
    def overflow_policy(self) -> OverflowPolicy:
        return self._overflow_policy

    def create(self) -> Session:
        now = self._clock()
        session = Session(
            id=str(uuid.uuid4()),
            transport_kind=self.transport_kind,
            outbound=OutboundQueue(self._queue_size, self._overflow_policy),
            created_at=now,
            last_activity=now,
        )
        with self._lock:
            self._sessions[session.id] = session
        return session

    def lookup(self, session_id: str, *, touch: bool = False) -> Session | None:
        """Return the live session for `session_id`, optionally marking activity."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and touch:
                session.last_activity = self._clock()
            return session

    def touch(self, session_id: str) -> bool:
        return self.lookup(session_id, touch=True) is not None

    def delete(self, session_id: str) -> bool:
        """Deregister and close a session. Returns whether it existed."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
        return session is not None

    def sweep(self, idle_seconds: float) -> list[str]:
        """Evict sessions with no activity for longer than `idle_seconds`."""
        now = self._clock()
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if now - s.last_activity > idle_seconds]
            evicted = [self._sessions.pop(sid) for sid in stale]
        for session in evicted:
            session.close()
            session.outbound.drain()
        return stale

    def close_all(self) -> int:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
        return len(sessions)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)
