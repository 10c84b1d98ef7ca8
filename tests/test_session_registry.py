import asyncio

import pytest

from toolgate.session.outbound import OfferOutcome, OutboundQueue, OverflowPolicy
from toolgate.session.registry import SessionRegistry


def _fill(queue: OutboundQueue, n: int) -> None:
    for i in range(n):
        assert queue.offer(f"m{i}".encode()) is OfferOutcome.ENQUEUED


def test_drop_newest_keeps_pending_messages():
    queue = OutboundQueue(3, OverflowPolicy.DROP_NEWEST)
    _fill(queue, 3)
    assert queue.offer(b"new") is OfferOutcome.DROPPED
    assert queue.offer(b"newer") is OfferOutcome.DROPPED
    assert queue.drain() == [b"m0", b"m1", b"m2"]


def test_evict_oldest_admits_newest():
    queue = OutboundQueue(3, OverflowPolicy.EVICT_OLDEST)
    _fill(queue, 3)
    assert queue.offer(b"new") is OfferOutcome.EVICTED_OLDEST
    assert queue.offer(b"newer") is OfferOutcome.EVICTED_OLDEST
    assert queue.drain() == [b"m2", b"new", b"newer"]


def test_policies_are_deterministic_and_differ():
    def run(policy):
        queue = OutboundQueue(2, policy)
        for i in range(5):
            queue.offer(str(i).encode())
        return queue.drain()

    assert run(OverflowPolicy.DROP_NEWEST) == run(OverflowPolicy.DROP_NEWEST) == [b"0", b"1"]
    assert run(OverflowPolicy.EVICT_OLDEST) == run(OverflowPolicy.EVICT_OLDEST) == [b"3", b"4"]


def test_default_capacity_is_one_hundred():
    assert OutboundQueue().maxsize == 100
    assert OutboundQueue(0).maxsize == 100


@pytest.mark.asyncio
async def test_get_waits_for_offer():
    queue = OutboundQueue(2)
    getter = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    assert not getter.done()
    queue.offer(b"hello")
    assert await asyncio.wait_for(getter, 1) == b"hello"


def test_create_lookup_delete(clock):
    registry = SessionRegistry("sse", clock=clock)
    a = registry.create()
    b = registry.create()
    assert a.id != b.id
    assert a.transport_kind == "sse"
    assert registry.count() == 2
    assert registry.lookup(a.id) is a
    assert registry.delete(a.id) is True
    assert a.is_closed
    assert registry.lookup(a.id) is None
    assert registry.delete(a.id) is False
    assert registry.count() == 1


def test_lookup_touch_updates_activity(clock):
    registry = SessionRegistry("polling", clock=clock)
    session = registry.create()
    clock.advance(10)
    registry.lookup(session.id)
    assert session.last_activity == session.created_at
    registry.lookup(session.id, touch=True)
    assert session.last_activity == session.created_at + 10


def test_sweep_evicts_only_idle_sessions(clock):
    registry = SessionRegistry("polling", overflow_policy=OverflowPolicy.EVICT_OLDEST, clock=clock)
    idle = registry.create()
    idle.outbound.offer(b"pending")
    active = registry.create()
    clock.advance(301)
    registry.touch(active.id)
    assert registry.sweep(300) == [idle.id]
    assert idle.is_closed
    assert idle.outbound.qsize() == 0
    assert registry.ids() == [active.id]


def test_sweep_threshold_is_strict(clock):
    registry = SessionRegistry("polling", clock=clock)
    session = registry.create()
    clock.advance(300)
    assert registry.sweep(300) == []
    assert registry.lookup(session.id) is session


def test_registries_do_not_share_sessions(clock):
    sse = SessionRegistry("sse", clock=clock)
    polling = SessionRegistry("polling", clock=clock)
    session = sse.create()
    assert polling.lookup(session.id) is None
    assert polling.count() == 0


def test_close_all(clock):
    registry = SessionRegistry("sse", clock=clock)
    sessions = [registry.create() for _ in range(3)]
    assert registry.close_all() == 3
    assert registry.count() == 0
    assert all(s.is_closed for s in sessions)
