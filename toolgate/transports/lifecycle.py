"""Process-wide shutdown signal observed by every blocking wait point."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Iterable


class ShutdownSignal:
    """
    One-shot cancellation flag shared by a transport and its sessions.

    `trigger()` may be called from any thread (signal handlers, test threads);
    the flag flips immediately and waiters are woken on their own loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._fired = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_set(self) -> bool:
        return self._fired

    def trigger(self) -> None:
        self._fired = True
        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    def _bind(self) -> None:
        self._loop = asyncio.get_running_loop()
        if self._fired:
            self._event.set()

    async def wait(self) -> None:
        self._bind()
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if shutdown fired first."""
        self._bind()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def race(
        self,
        awaitable: Awaitable[Any],
        *,
        timeout: float | None = None,
        also: Iterable[asyncio.Event] = (),
    ) -> tuple[bool, Any]:
        """
        Await `awaitable` unless shutdown, one of `also`, or `timeout` comes first.

        Returns (completed, value). When not completed the awaitable is
        cancelled, so a pending queue get never swallows a message.
        """
        self._bind()
        task = asyncio.ensure_future(awaitable)
        if self._fired:
            task.cancel()
            return False, None
        stoppers = [asyncio.ensure_future(self._event.wait())]
        stoppers.extend(asyncio.ensure_future(event.wait()) for event in also)
        try:
            done, _ = await asyncio.wait({task, *stoppers}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (task, *stoppers):
                if not pending.done():
                    pending.cancel()
        if task in done:
            return True, task.result()
        return False, None
