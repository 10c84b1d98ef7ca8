"""Wire codec, method table and request dispatcher."""

from toolgate.protocol.codec import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    WIRE_VERSION,
    Envelope,
    Response,
    StructuredError,
    decode,
    encode,
)
from toolgate.protocol.context import CallContext
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.protocol.methods import Method, lookup_method

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "WIRE_VERSION",
    "CallContext",
    "Dispatcher",
    "Envelope",
    "Method",
    "Response",
    "StructuredError",
    "decode",
    "encode",
    "lookup_method",
]
