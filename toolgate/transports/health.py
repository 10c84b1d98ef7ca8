"""Uniform health payload shared by all transports."""

from __future__ import annotations

from typing import Any

from toolgate import PROTOCOL_VERSION, SERVER_NAME, __version__


def health_payload(
    *,
    transport: str,
    sessions: int,
    shutting_down: bool = False,
    server: str = SERVER_NAME,
    version: str = __version__,
) -> dict[str, Any]:
    return {
        "status": "shutting_down" if shutting_down else "healthy",
        "transport": transport,
        "server": server,
        "version": version,
        "protocolVersion": PROTOCOL_VERSION,
        "sessions": sessions,
    }
