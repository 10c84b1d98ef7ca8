"""Transport base classes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from fastapi import FastAPI
from loguru import logger

from toolgate.protocol.dispatcher import Dispatcher
from toolgate.session.registry import SessionRegistry
from toolgate.transports.health import health_payload
from toolgate.transports.lifecycle import ShutdownSignal


class Transport(ABC):
    """
    Abstract base for a transport binding.

    A transport owns session creation and teardown, feeds raw frames into the
    shared dispatcher and delivers the resulting bytes over its own channel.
    """

    kind: str = ""

    def __init__(self, dispatcher: Dispatcher, *, shutdown: ShutdownSignal | None = None):
        self.dispatcher = dispatcher
        self.shutdown = shutdown or ShutdownSignal()

    @abstractmethod
    async def serve(self) -> None:
        """Run until end of input or shutdown."""
        pass

    @abstractmethod
    def session_count(self) -> int:
        pass

    def health(self) -> dict[str, Any]:
        return health_payload(
            transport=self.kind,
            sessions=self.session_count(),
            shutting_down=self.shutdown.is_set,
            server=self.dispatcher.server_name,
            version=self.dispatcher.server_version,
        )

    async def run(self) -> None:
        """Serve, bracketed by start/shutdown audit records."""
        audit = self.dispatcher.audit
        audit.log_system("server_start", details={"transport": self.kind, "role": self.dispatcher.role})
        error: str | None = None
        try:
            await self.serve()
        except Exception as e:
            error = str(e)
            raise
        finally:
            self.shutdown.trigger()
            audit.log_system("server_shutdown", success=error is None, error=error)
            logger.info("{} transport stopped", self.kind)


class HTTPTransport(Transport):
    """Transport served by uvicorn with one session registry per instance."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        registry: SessionRegistry,
        host: str = "127.0.0.1",
        port: int = 8080,
        grace_seconds: float = 5.0,
        shutdown: ShutdownSignal | None = None,
    ):
        super().__init__(dispatcher, shutdown=shutdown)
        self.registry = registry
        self.host = host
        self.port = port
        self.grace_seconds = grace_seconds
        self.app = self.create_app()

    @abstractmethod
    def create_app(self) -> FastAPI:
        pass

    def session_count(self) -> int:
        return self.registry.count()

    async def serve(self) -> None:
        import uvicorn

        shutdown = self.shutdown

        class _Server(uvicorn.Server):
            def handle_exit(self, sig: int, frame: Any) -> None:
                # Streams and long polls must see the signal before uvicorn
                # starts waiting on open connections.
                shutdown.trigger()
                super().handle_exit(sig, frame)

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="info",
            timeout_graceful_shutdown=max(1, int(self.grace_seconds)),
        )
        server = _Server(config)
        logger.info("{} transport listening on {}:{}", self.kind, self.host, self.port)
        try:
            await server.serve()
        finally:
            shutdown.trigger()
            closed = self.registry.close_all()
            if closed:
                logger.info("Closed {} open {} session(s)", closed, self.kind)
