"""Shared fixtures: fake clock, in-memory audit sink, sample capability registry."""

import io

import pytest

from toolgate.audit.logger import AuditLogger
from toolgate.audit.ratelimit import TokenBucketRateLimiter
from toolgate.capabilities.registry import CapabilityDescriptor, CapabilityRegistry
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.utils.exceptions import ToolError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_stream():
    return io.StringIO()


@pytest.fixture
def audit(audit_stream):
    return AuditLogger(stream=audit_stream, buffer_size=50)


@pytest.fixture
def registry():
    reg = CapabilityRegistry()

    def get_record(args):
        return {"namespace": args["namespace"], "key": args["key"], "bins": {"name": "ada"}}

    async def put_record(args):
        return {"written": True}

    def create_index(args):
        return {"created": args.get("index_name")}

    def failing(args):
        raise ToolError("cluster_info", "cluster unreachable")

    reg.register_tool(CapabilityDescriptor(name="get_record", description="Read one record"), get_record)
    reg.register_tool(CapabilityDescriptor(name="put_record", description="Write one record"), put_record)
    reg.register_tool(CapabilityDescriptor(name="create_index", description="Create an index"), create_index)
    reg.register_tool(CapabilityDescriptor(name="cluster_info", description="Cluster info"), failing)
    return reg


@pytest.fixture
def make_dispatcher(registry, audit):
    """Build a dispatcher over the shared registry; role and limiter vary per test."""

    def _make(role: str = "admin", rate_limiter: TokenBucketRateLimiter | None = None) -> Dispatcher:
        return Dispatcher(registry, rate_limiter=rate_limiter, audit=audit, role=role)

    return _make
