import asyncio
import io
import json
import os

import pytest

from toolgate.audit.logger import Category
from toolgate.capabilities.registry import CapabilityRegistry
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.transports.stdio import StdioTransport


def _transport(stdin: bytes, dispatcher: Dispatcher | None = None) -> tuple[StdioTransport, io.BytesIO]:
    out = io.BytesIO()
    transport = StdioTransport(dispatcher or Dispatcher(CapabilityRegistry()), stdin=io.BytesIO(stdin), stdout=out)
    return transport, out


def _frames(out: io.BytesIO) -> list[dict]:
    data = out.getvalue()
    assert data == b"" or data.endswith(b"\n")
    return [json.loads(line) for line in data.splitlines()]


@pytest.mark.asyncio
async def test_capability_list_over_stdio():
    transport, out = _transport(b'{"version":"2.0","id":1,"method":"capabilities/list"}\n')
    await transport.serve()
    assert out.getvalue() == b'{"version":"2.0","id":1,"result":{"tools":[]}}\n'


@pytest.mark.asyncio
async def test_responses_follow_request_order():
    stdin = b"".join(
        json.dumps({"version": "2.0", "id": i, "method": "ping"}).encode() + b"\n" for i in range(5)
    )
    transport, out = _transport(stdin)
    await transport.serve()
    assert [f["id"] for f in _frames(out)] == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_notifications_and_blank_lines_write_nothing():
    stdin = b'\n   \n{"version":"2.0","method":"notifications/initialized"}\n{"version":"2.0","id":"a","method":"ping"}\r\n'
    transport, out = _transport(stdin)
    await transport.serve()
    assert _frames(out) == [{"version": "2.0", "id": "a", "result": {}}]


@pytest.mark.asyncio
async def test_unterminated_final_line_is_discarded():
    stdin = b'{"version":"2.0","id":1,"method":"ping"}\n{"version":"2.0","id":2,"method":"ping"}'
    transport, out = _transport(stdin)
    await transport.serve()
    assert [f["id"] for f in _frames(out)] == [1]


@pytest.mark.asyncio
async def test_malformed_frame_does_not_stop_the_loop():
    stdin = b'not json\n{"version":"2.0","id":2,"method":"ping"}\n'
    transport, out = _transport(stdin)
    await transport.serve()
    frames = _frames(out)
    assert frames[0]["error"]["code"] == -32700
    assert frames[0]["id"] is None
    assert frames[1] == {"version": "2.0", "id": 2, "result": {}}


@pytest.mark.asyncio
async def test_stops_reading_after_shutdown():
    transport, out = _transport(b'{"version":"2.0","id":1,"method":"ping"}\n')
    transport.shutdown.trigger()
    await transport.serve()
    assert out.getvalue() == b""


@pytest.mark.asyncio
async def test_run_records_start_and_shutdown(audit):
    dispatcher = Dispatcher(CapabilityRegistry(), audit=audit)
    transport, _ = _transport(b"", dispatcher)
    await transport.run()
    events = audit.get_recent_events(10)
    assert [(e.category, e.operation) for e in events] == [
        (Category.SYSTEM, "server_start"),
        (Category.SYSTEM, "server_shutdown"),
    ]
    assert events[0].details["transport"] == "stdio"
    assert transport.shutdown.is_set


def test_stdio_health_reports_one_session():
    transport, _ = _transport(b"")
    health = transport.health()
    assert health["status"] == "healthy"
    assert health["transport"] == "stdio"
    assert health["sessions"] == 1


@pytest.mark.asyncio
async def test_shutdown_interrupts_idle_pipe_read():
    read_fd, write_fd = os.pipe()
    stdin = open(read_fd, "rb", buffering=0)
    transport = StdioTransport(Dispatcher(CapabilityRegistry()), stdin=stdin, stdout=io.BytesIO())
    try:
        serving = asyncio.create_task(transport.serve())
        await asyncio.sleep(0.1)
        assert not serving.done()
        transport.shutdown.trigger()
        await asyncio.wait_for(serving, 2)
    finally:
        os.close(write_fd)
        stdin.close()


@pytest.mark.asyncio
async def test_pipe_frames_are_answered_until_eof():
    read_fd, write_fd = os.pipe()
    stdin = open(read_fd, "rb", buffering=0)
    out = io.BytesIO()
    transport = StdioTransport(Dispatcher(CapabilityRegistry()), stdin=stdin, stdout=out)
    try:
        serving = asyncio.create_task(transport.serve())
        os.write(write_fd, b'{"version":"2.0","id":7,"method":"ping"}\n')
        for _ in range(200):
            if out.getvalue():
                break
            await asyncio.sleep(0.01)
        assert _frames(out) == [{"version": "2.0", "id": 7, "result": {}}]
        os.close(write_fd)
        write_fd = None
        await asyncio.wait_for(serving, 2)
    finally:
        if write_fd is not None:
            os.close(write_fd)
        stdin.close()
