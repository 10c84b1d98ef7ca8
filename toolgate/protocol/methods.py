"""Closed method table for protocol version 2024-11-05."""

from __future__ import annotations

from enum import Enum


class Method(str, Enum):
    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    PING = "ping"
    SHUTDOWN = "shutdown"
    CAPABILITIES_LIST = "capabilities/list"
    CAPABILITIES_CALL = "capabilities/call"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"
    PROMPTS_LIST = "prompts/list"


# Names used by earlier clients of the same protocol version.
_ALIASES: dict[str, Method] = {
    "initialized": Method.INITIALIZED,
    "tools/list": Method.CAPABILITIES_LIST,
    "tools/call": Method.CAPABILITIES_CALL,
}


def lookup_method(name: str) -> Method | None:
    """Resolve a wire method name, or None if it is not in the table."""
    try:
        return Method(name)
    except ValueError:
        return _ALIASES.get(name)
