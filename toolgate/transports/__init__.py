"""Transport bindings: stdio, server-sent events and long-polling."""

from __future__ import annotations

from typing import Any

from toolgate.protocol.dispatcher import Dispatcher
from toolgate.transports.base import HTTPTransport, Transport
from toolgate.transports.lifecycle import ShutdownSignal
from toolgate.transports.polling import PollingTransport
from toolgate.transports.sse import SSETransport
from toolgate.transports.stdio import StdioTransport


def create_transport(config: Any, dispatcher: Dispatcher, *, shutdown: ShutdownSignal | None = None) -> Transport:
    """Build the transport selected by `config.transport`."""
    sessions = config.sessions
    if config.transport == "stdio":
        return StdioTransport(dispatcher, shutdown=shutdown)
    if config.transport == "sse":
        return SSETransport(
            dispatcher,
            host=config.host,
            port=config.port,
            queue_size=sessions.queue_size,
            grace_seconds=sessions.shutdown_grace_seconds,
            shutdown=shutdown,
        )
    if config.transport == "polling":
        return PollingTransport(
            dispatcher,
            host=config.host,
            port=config.port,
            queue_size=sessions.queue_size,
            idle_timeout_seconds=sessions.idle_timeout_seconds,
            sweep_interval_seconds=sessions.sweep_interval_seconds,
            receive_timeout_seconds=sessions.receive_timeout_seconds,
            grace_seconds=sessions.shutdown_grace_seconds,
            shutdown=shutdown,
        )
    raise ValueError(f"unsupported transport: {config.transport}")


__all__ = [
    "HTTPTransport",
    "PollingTransport",
    "SSETransport",
    "ShutdownSignal",
    "StdioTransport",
    "Transport",
    "create_transport",
]
