"""Push-stream transport: server-sent events out, short POSTs in.

GET /sse opens a stream bound to a fresh session and announces the
submission path; POST /message?sessionId=<id> dispatches a frame and queues
the response for that stream. A full queue drops the new message.
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from loguru import logger

from toolgate.protocol.context import CallContext
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.session.outbound import DEFAULT_QUEUE_SIZE, OfferOutcome, OverflowPolicy
from toolgate.session.registry import Session, SessionRegistry
from toolgate.transports.base import HTTPTransport
from toolgate.transports.lifecycle import ShutdownSignal

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "Access-Control-Allow-Origin": "*",
}


def format_event(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


class SSETransport(HTTPTransport):
    kind = "sse"

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        host: str = "127.0.0.1",
        port: int = 8080,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        grace_seconds: float = 5.0,
        registry: SessionRegistry | None = None,
        shutdown: ShutdownSignal | None = None,
    ):
        super().__init__(
            dispatcher,
            registry=registry or SessionRegistry(
                self.kind, queue_size=queue_size, overflow_policy=OverflowPolicy.DROP_NEWEST
            ),
            host=host,
            port=port,
            grace_seconds=grace_seconds,
            shutdown=shutdown,
        )

    def create_app(self) -> FastAPI:
        """Create the FastAPI app serving /sse, /message and /health."""
        app = FastAPI(title="toolgate (sse)")

        @app.get("/sse", response_model=None)
        async def open_stream() -> StreamingResponse | PlainTextResponse:
            if self.shutdown.is_set:
                return PlainTextResponse("Server shutting down", status_code=503)
            session = self.registry.create()
            logger.info("SSE client connected: {}", session.id)
            return StreamingResponse(
                self.event_stream(session),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        @app.post("/message")
        async def post_message(request: Request, session_id: str = Query("", alias="sessionId")) -> PlainTextResponse:
            if self.shutdown.is_set:
                return PlainTextResponse("Server shutting down", status_code=503)
            if not session_id:
                return PlainTextResponse("Missing sessionId", status_code=400)
            session = self.registry.lookup(session_id, touch=True)
            if session is None:
                return PlainTextResponse("Session not found", status_code=404)

            body = await request.body()
            ctx = CallContext(session_id=session.id, transport=self.kind, client_id=session.id)
            out = await self.dispatcher.handle(body, ctx)
            if out is not None and session.outbound.offer(out) is OfferOutcome.DROPPED:
                logger.warning("Client message buffer full, dropping response: {}", session.id)
            return PlainTextResponse("Accepted", status_code=202)

        @app.get("/health")
        async def health() -> JSONResponse:
            return JSONResponse(self.health())

        return app

    async def event_stream(self, session: Session) -> AsyncIterator[str]:
        """Announce the submission path, then relay queued responses."""
        try:
            yield format_event("endpoint", f"/message?sessionId={session.id}")
            while True:
                completed, message = await self.shutdown.race(session.outbound.get(), also=(session.closed,))
                if not completed:
                    break
                yield format_event("message", message.decode("utf-8"))
            # Flush what was already answered before closing the stream.
            for message in session.outbound.drain():
                yield format_event("message", message.decode("utf-8"))
        finally:
            self.registry.delete(session.id)
            logger.info("SSE client disconnected: {}", session.id)
