import json

import httpx
import pytest

from toolgate.capabilities.registry import CapabilityRegistry
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.session.outbound import OverflowPolicy
from toolgate.session.registry import SessionRegistry
from toolgate.transports.polling import CLIENT_ID_HEADER, CONNECT_MESSAGE, PollingTransport


def _ping(i) -> bytes:
    return json.dumps({"version": "2.0", "id": i, "method": "ping"}).encode()


def _client(transport: PollingTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=transport.app), base_url="http://gateway")


@pytest.fixture
def polling():
    return PollingTransport(Dispatcher(CapabilityRegistry()), queue_size=2, receive_timeout_seconds=0.05)


async def _connect(client: httpx.AsyncClient) -> dict[str, str]:
    resp = await client.get("/ws")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "connected"
    assert body["message"] == CONNECT_MESSAGE
    return {CLIENT_ID_HEADER: body["client_id"]}


def test_registry_evicts_oldest_on_overflow(polling):
    assert polling.registry.overflow_policy is OverflowPolicy.EVICT_OLDEST


@pytest.mark.asyncio
async def test_send_returns_inline_and_queues_response(polling):
    async with _client(polling) as client:
        headers = await _connect(client)

        sent = await client.post("/ws/send", content=_ping(1), headers=headers)
        assert sent.status_code == 200
        assert sent.json() == {"version": "2.0", "id": 1, "result": {}}

        received = await client.get("/ws/receive", headers=headers)
        assert received.json() == {"version": "2.0", "id": 1, "result": {}}

        empty = await client.get("/ws/receive", headers=headers)
        assert empty.json() == {"status": "no_messages"}


@pytest.mark.asyncio
async def test_notification_gets_no_content(polling):
    async with _client(polling) as client:
        headers = await _connect(client)
        resp = await client.post(
            "/ws/send",
            content=b'{"version":"2.0","method":"notifications/initialized"}',
            headers=headers,
        )
        assert resp.status_code == 204
        assert polling.registry.lookup(headers[CLIENT_ID_HEADER]).outbound.qsize() == 0


@pytest.mark.asyncio
async def test_full_queue_evicts_oldest(polling):
    async with _client(polling) as client:
        headers = await _connect(client)
        for i in (1, 2, 3):
            assert (await client.post("/ws/send", content=_ping(i), headers=headers)).status_code == 200

        ids = [(await client.get("/ws/receive", headers=headers)).json()["id"] for _ in range(2)]
        assert ids == [2, 3]


@pytest.mark.asyncio
async def test_unknown_and_missing_client(polling):
    async with _client(polling) as client:
        missing = await client.post("/ws/send", content=_ping(1))
        assert (missing.status_code, missing.text) == (400, "X-Client-ID header required")

        unknown = await client.post("/ws/send", content=_ping(1), headers={CLIENT_ID_HEADER: "nope"})
        assert (unknown.status_code, unknown.text) == (404, "Client not found")

        assert (await client.get("/ws/receive", headers={CLIENT_ID_HEADER: "nope"})).status_code == 404
        assert (await client.get("/ws/receive")).status_code == 400


@pytest.mark.asyncio
async def test_disconnect(polling):
    async with _client(polling) as client:
        headers = await _connect(client)
        resp = await client.delete("/ws", headers=headers)
        assert resp.json() == {"client_id": headers[CLIENT_ID_HEADER], "status": "disconnected"}
        assert polling.registry.count() == 0
        assert (await client.delete("/ws", headers=headers)).status_code == 404
        assert (await client.post("/ws/send", content=_ping(1), headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_sweep_evicts_idle_clients(clock):
    registry = SessionRegistry("polling", overflow_policy=OverflowPolicy.EVICT_OLDEST, clock=clock)
    polling = PollingTransport(Dispatcher(CapabilityRegistry()), registry=registry, idle_timeout_seconds=300)
    async with _client(polling) as client:
        idle = await _connect(client)
        clock.advance(200)
        active = await _connect(client)
        clock.advance(101)

        assert polling.sweep_once() == [idle[CLIENT_ID_HEADER]]
        assert (await client.post("/ws/send", content=_ping(1), headers=idle)).status_code == 404
        assert (await client.post("/ws/send", content=_ping(1), headers=active)).status_code == 200


@pytest.mark.asyncio
async def test_sweep_loop_exits_on_shutdown(polling):
    polling.shutdown.trigger()
    await polling.sweep_loop()


@pytest.mark.asyncio
async def test_health_and_shutdown_refusal(polling):
    async with _client(polling) as client:
        headers = await _connect(client)
        health = (await client.get("/health")).json()
        assert (health["transport"], health["sessions"], health["status"]) == ("polling", 1, "healthy")

        polling.shutdown.trigger()
        assert (await client.get("/ws")).status_code == 503
        assert (await client.post("/ws/send", content=_ping(1), headers=headers)).status_code == 503
        assert (await client.get("/ws/receive", headers=headers)).json() == {"status": "no_messages"}
