"""Envelope codec for the versioned request/response wire format.

Requests: {"version": "2.0", "id": ..., "method": ..., "params": ...}
Responses carry exactly one of "result" or "error".
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from toolgate.utils.exceptions import ProtocolError

WIRE_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

ERROR_MESSAGES: dict[int, str] = {
    PARSE_ERROR: "Parse error",
    INVALID_REQUEST: "Invalid Request",
    METHOD_NOT_FOUND: "Method not found",
    INVALID_PARAMS: "Invalid params",
    INTERNAL_ERROR: "Internal error",
}


@dataclass(slots=True)
class Envelope:
    """A decoded inbound frame. `has_id` is False for notifications."""

    method: str
    params: Any = None
    id: Any = None
    version: Any = None
    has_id: bool = False

    @property
    def is_notification(self) -> bool:
        return not self.has_id


@dataclass(slots=True)
class StructuredError:
    code: int
    message: str
    data: Any = None

    @classmethod
    def of(cls, code: int, data: Any = None) -> "StructuredError":
        return cls(code=code, message=ERROR_MESSAGES.get(code, "Error"), data=data)

    @classmethod
    def from_exception(cls, exc: ProtocolError) -> "StructuredError":
        return cls(code=exc.rpc_code, message=exc.message, data=exc.data)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass(slots=True)
class Response:
    id: Any
    result: Any = None
    error: StructuredError | None = None

    @classmethod
    def success(cls, request_id: Any, result: Any) -> "Response":
        return cls(id=request_id, result=result)

    @classmethod
    def failure(cls, request_id: Any, error: StructuredError) -> "Response":
        return cls(id=request_id, error=error)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"version": WIRE_VERSION, "id": self.id}
        if self.error is not None:
            out["error"] = self.error.to_dict()
        else:
            out["result"] = self.result
        return out


def protocol_error(code: int, data: Any = None, **kwargs: Any) -> ProtocolError:
    """Build a ProtocolError with the canonical message for `code`."""
    return ProtocolError(code, ERROR_MESSAGES.get(code, "Error"), data=data, **kwargs)


def decode(raw: bytes | bytearray | str) -> Envelope:
    """Parse one frame into an Envelope or raise ProtocolError."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise protocol_error(PARSE_ERROR, str(e)) from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise protocol_error(PARSE_ERROR, str(e)) from e

    if not isinstance(data, dict):
        raise protocol_error(INVALID_REQUEST, "request must be a JSON object")

    has_id = "id" in data
    request_id = data.get("id")
    method = data.get("method")
    if not isinstance(method, str) or not method:
        raise protocol_error(
            INVALID_REQUEST,
            "method must be a non-empty string",
            request_id=request_id,
            notification=not has_id,
        )
    return Envelope(
        method=method,
        params=data.get("params"),
        id=request_id,
        version=data.get("version"),
        has_id=has_id,
    )


def encode(response: Response) -> bytes:
    """Serialize a response as compact UTF-8 JSON."""
    return json.dumps(response.to_dict(), ensure_ascii=False, separators=(",", ":"), default=str).encode("utf-8")
