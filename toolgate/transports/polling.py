"""Polling transport: an HTTP long-poll simulation of a duplex channel.

This is a deliberately simplified contract, not a socket. A send both returns
its response inline and queues it; a receive blocks until a queued message
arrives or the receive timeout passes. A full queue evicts its oldest message
to admit the newest, favouring recency over completeness. Idle sessions are
swept on a timer.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger

from toolgate.protocol.context import CallContext
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.session.outbound import DEFAULT_QUEUE_SIZE, OfferOutcome, OverflowPolicy
from toolgate.session.registry import SessionRegistry
from toolgate.transports.base import HTTPTransport
from toolgate.transports.lifecycle import ShutdownSignal

CLIENT_ID_HEADER = "X-Client-ID"
CONNECT_MESSAGE = "Use /ws/send to send messages and /ws/receive to poll for responses"


class PollingTransport(HTTPTransport):
    kind = "polling"

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        host: str = "127.0.0.1",
        port: int = 8080,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        idle_timeout_seconds: float = 300.0,
        sweep_interval_seconds: float = 60.0,
        receive_timeout_seconds: float = 30.0,
        grace_seconds: float = 5.0,
        registry: SessionRegistry | None = None,
        shutdown: ShutdownSignal | None = None,
    ):
        self.idle_timeout_seconds = idle_timeout_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.receive_timeout_seconds = receive_timeout_seconds
        super().__init__(
            dispatcher,
            registry=registry or SessionRegistry(
                self.kind, queue_size=queue_size, overflow_policy=OverflowPolicy.EVICT_OLDEST
            ),
            host=host,
            port=port,
            grace_seconds=grace_seconds,
            shutdown=shutdown,
        )

    def sweep_once(self) -> list[str]:
        evicted = self.registry.sweep(self.idle_timeout_seconds)
        for session_id in evicted:
            logger.info("Cleaned up stale client: {}", session_id)
        return evicted

    async def sweep_loop(self) -> None:
        """Evict idle sessions every sweep interval until shutdown."""
        while not await self.shutdown.sleep(self.sweep_interval_seconds):
            self.sweep_once()

    def create_app(self) -> FastAPI:
        """Create the FastAPI app serving /ws, /ws/send, /ws/receive and /health."""

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncIterator[None]:
            sweeper = asyncio.create_task(self.sweep_loop())
            try:
                yield
            finally:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass

        app = FastAPI(title="toolgate (polling)", lifespan=lifespan)

        def _unavailable() -> PlainTextResponse:
            return PlainTextResponse("Server shutting down", status_code=503)

        @app.get("/ws")
        async def connect() -> Response:
            if self.shutdown.is_set:
                return _unavailable()
            session = self.registry.create()
            logger.info("Polling client connected: {}", session.id)
            return JSONResponse({"client_id": session.id, "status": "connected", "message": CONNECT_MESSAGE})

        @app.post("/ws/send")
        async def send(request: Request, client_id: str = Header("", alias=CLIENT_ID_HEADER)) -> Response:
            if self.shutdown.is_set:
                return _unavailable()
            if not client_id:
                return PlainTextResponse(f"{CLIENT_ID_HEADER} header required", status_code=400)
            session = self.registry.lookup(client_id, touch=True)
            if session is None:
                return PlainTextResponse("Client not found", status_code=404)

            body = await request.body()
            ctx = CallContext(session_id=session.id, transport=self.kind, client_id=session.id)
            out = await self.dispatcher.handle(body, ctx)
            if out is None:
                return Response(status_code=204)
            if session.outbound.offer(out) is OfferOutcome.EVICTED_OLDEST:
                logger.debug("Client queue full, evicted oldest message: {}", session.id)
            return Response(content=out, media_type="application/json")

        @app.get("/ws/receive")
        async def receive(client_id: str = Header("", alias=CLIENT_ID_HEADER)) -> Response:
            if not client_id:
                return PlainTextResponse(f"{CLIENT_ID_HEADER} header required", status_code=400)
            session = self.registry.lookup(client_id, touch=True)
            if session is None:
                return PlainTextResponse("Client not found", status_code=404)

            completed, message = await self.shutdown.race(
                session.outbound.get(),
                timeout=self.receive_timeout_seconds,
                also=(session.closed,),
            )
            self.registry.touch(session.id)
            if completed:
                return Response(content=message, media_type="application/json")
            return JSONResponse({"status": "no_messages"})

        @app.delete("/ws")
        async def disconnect(client_id: str = Header("", alias=CLIENT_ID_HEADER)) -> Response:
            if not client_id:
                return PlainTextResponse(f"{CLIENT_ID_HEADER} header required", status_code=400)
            if not self.registry.delete(client_id):
                return PlainTextResponse("Client not found", status_code=404)
            logger.info("Polling client disconnected: {}", client_id)
            return JSONResponse({"client_id": client_id, "status": "disconnected"})

        @app.get("/health")
        async def health() -> JSONResponse:
            return JSONResponse(self.health())

        return app
