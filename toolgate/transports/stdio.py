"""Unary-stream transport: newline-delimited frames over stdin/stdout."""

from __future__ import annotations

import asyncio
import io
import sys
from typing import BinaryIO

from loguru import logger

from toolgate.protocol.context import CallContext
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.transports.base import Transport
from toolgate.transports.lifecycle import ShutdownSignal

STDIO_SESSION_ID = "stdio"
MAX_FRAME_BYTES = 10 * 1024 * 1024


class StdioTransport(Transport):
    """
    Strictly sequential loop with one implicit session.

    Each frame is answered and flushed before the next one is read. Stdout
    carries frames only; diagnostics go to stderr through loguru. Every read
    is raced against the shutdown signal, so an idle loop exits as soon as
    shutdown fires.
    """

    kind = "stdio"

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        stdin: BinaryIO | None = None,
        stdout: BinaryIO | None = None,
        shutdown: ShutdownSignal | None = None,
    ):
        super().__init__(dispatcher, shutdown=shutdown)
        self._stdin = stdin if stdin is not None else sys.stdin.buffer
        self._stdout = stdout if stdout is not None else sys.stdout.buffer
        self._context = CallContext(session_id=STDIO_SESSION_ID, transport=self.kind)

    def session_count(self) -> int:
        return 1

    async def _open_reader(self) -> tuple[asyncio.StreamReader, asyncio.BaseTransport | None]:
        """Attach stdin to a StreamReader; in-memory and regular-file inputs are read up front."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=MAX_FRAME_BYTES)
        try:
            self._stdin.fileno()
            pipe, _ = await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), self._stdin)
            return reader, pipe
        except (OSError, ValueError, io.UnsupportedOperation):
            pass
        reader.feed_data(await asyncio.to_thread(self._stdin.read))
        reader.feed_eof()
        return reader, None

    async def serve(self) -> None:
        logger.info("Gateway started (stdio transport)")
        if self.shutdown.is_set:
            return
        reader, pipe = await self._open_reader()
        try:
            while True:
                try:
                    completed, line = await self.shutdown.race(reader.readline())
                except ValueError as e:
                    logger.warning("Discarding oversized frame: {}", e)
                    continue
                if not completed:
                    logger.info("Shutdown requested, stdio loop stopping")
                    return
                if not line:
                    return
                if not line.endswith(b"\n"):
                    logger.debug("Discarding unterminated final frame ({} bytes)", len(line))
                    return
                frame = line.rstrip(b"\r\n")
                if not frame.strip():
                    continue
                await self.handle_frame(frame)
        finally:
            if pipe is not None:
                pipe.close()

    async def handle_frame(self, frame: bytes) -> bytes | None:
        out = await self.dispatcher.handle(frame, self._context)
        if out is not None:
            self._stdout.write(out + b"\n")
            self._stdout.flush()
        return out
