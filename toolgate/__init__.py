"""toolgate - a JSON-RPC gateway exposing tools and resources over stdio, SSE and long-polling."""

from loguru import logger

__version__ = "0.1.0"
__logo__ = "⛩"

SERVER_NAME = "toolgate"
PROTOCOL_VERSION = "2024-11-05"

# Library code stays quiet until the CLI (or an embedding app) enables it.
logger.disable("toolgate")
