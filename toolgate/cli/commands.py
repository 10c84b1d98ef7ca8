"""CLI commands for toolgate."""

import asyncio
import signal
import sys
from pathlib import Path

import typer
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape

from toolgate import PROTOCOL_VERSION, SERVER_NAME, __logo__, __version__
from toolgate.audit.logger import AuditLogger
from toolgate.capabilities.registry import CapabilityRegistry
from toolgate.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from toolgate.cli.shared.network_utils import is_port_in_use, listen_url
from toolgate.config.loader import get_config_path, load_config
from toolgate.config.schema import Config
from toolgate.protocol.dispatcher import Dispatcher
from toolgate.transports import HTTPTransport, ShutdownSignal, Transport, create_transport
from toolgate.utils.exceptions import AuditSinkError

app = typer.Typer(
    name="toolgate",
    help=f"{__logo__} toolgate - tool and resource gateway over stdio, SSE and long-polling",
    no_args_is_help=True,
)

console = Console()
# Stdout carries protocol frames under the stdio transport.
err_console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} toolgate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """toolgate - tool and resource gateway."""
    pass


def resolve_config(config_path: Path | None = None, **overrides) -> Config:
    """Load config from file/env and apply non-empty CLI overrides."""
    config = load_config(config_path)
    updates = {k: v for k, v in overrides.items() if v is not None}
    if not updates:
        return config
    try:
        return Config.model_validate({**config.model_dump(), **updates})
    except PydanticValidationError as e:
        raise ValueError(f"Invalid option: {e}") from e


def build_gateway(
    config: Config,
    registry: CapabilityRegistry | None = None,
    *,
    audit: AuditLogger | None = None,
    shutdown: ShutdownSignal | None = None,
) -> Transport:
    """
    Wire audit log, rate limiter, validator, dispatcher and transport.

    Embedding applications pass their own populated registry; the registry is
    frozen once the dispatcher is built.

    Raises:
        AuditSinkError: If the configured audit file cannot be opened.
    """
    dispatcher = Dispatcher.from_config(config, registry or CapabilityRegistry(), audit=audit)
    return create_transport(config, dispatcher, shutdown=shutdown)


async def _run_transport(transport: Transport) -> None:
    if not isinstance(transport, HTTPTransport):
        # uvicorn installs its own handlers for the HTTP transports.
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGTERM, transport.shutdown.trigger)
        except (NotImplementedError, RuntimeError):
            pass
    try:
        await transport.run()
    finally:
        transport.dispatcher.audit.close()


# ============================================================================
# Serve
# ============================================================================


@app.command()
def serve(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json (default: ~/.toolgate/config.json)"),
    transport: str = typer.Option(None, "--transport", "-t", help="Transport: stdio | sse | polling"),
    host: str = typer.Option(None, "--host", help="Bind host for HTTP transports"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port for HTTP transports"),
    role: str = typer.Option(None, "--role", help="Caller role: read-only | read-write | admin"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs on stderr"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Debug logging to stderr and ~/.toolgate/logs"),
):
    """Start the gateway on the configured transport."""
    configure_console_logging("DEBUG" if debug else "INFO" if logs else "WARNING")
    if debug:
        ensure_rotating_log_file("serve", level="DEBUG")

    try:
        config = resolve_config(config_path, transport=transport, host=host, port=port, role=role)
    except ValueError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    if config.transport != "stdio" and is_port_in_use(config.host, config.port):
        err_console.print(
            f"[red]Port {config.port} is already in use.[/red] "
            f"Close the process using it, or pass [cyan]--port[/cyan] (current: {config.host}:{config.port})."
        )
        raise typer.Exit(1)

    try:
        gateway = build_gateway(config)
    except AuditSinkError as e:
        err_console.print(f"[red]{escape(e.message)}[/red]")
        raise typer.Exit(1) from e

    if config.transport == "stdio":
        err_console.print(f"{__logo__} toolgate v{__version__} on stdio (role: {config.role})")
    else:
        err_console.print(
            f"{__logo__} toolgate v{__version__} on {listen_url(config.host, config.port)} "
            f"({config.transport}, role: {config.role})"
        )

    try:
        asyncio.run(_run_transport(gateway))
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Shutting down...[/yellow]")
    except OSError as e:
        logger.exception("Transport failed: {}", e)
        err_console.print(f"[red]Transport failed: {escape(str(e))}[/red]")
        raise typer.Exit(1) from e


# ============================================================================
# Status / Version
# ============================================================================


@app.command()
def status(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Show the resolved configuration."""
    path = config_path or get_config_path()
    try:
        config = resolve_config(config_path)
    except ValueError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1) from e

    console.print(f"{__logo__} toolgate Status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[dim](defaults)[/dim]'}")
    console.print(f"Transport: {config.transport}")
    if config.transport != "stdio":
        console.print(f"Listen: {listen_url(config.host, config.port)}")
    console.print(f"Role: {config.role}")

    audit = config.audit
    sink = audit.file_path or "stderr"
    console.print(f"Audit: {'[green]on[/green]' if audit.enabled else '[dim]off[/dim]'} -> {sink} (ring {audit.buffer_size})")
    if audit.rate_limit_enabled:
        console.print(f"Rate limit: {audit.rate_limit_rps:g}/s, burst {audit.rate_limit_burst}")
    else:
        console.print("Rate limit: [dim]disabled[/dim]")

    sessions = config.sessions
    console.print(
        f"Sessions: queue {sessions.queue_size}, idle {sessions.idle_timeout_seconds:g}s, "
        f"receive {sessions.receive_timeout_seconds:g}s"
    )


@app.command()
def version():
    """Show version and protocol information."""
    console.print(f"{__logo__} {SERVER_NAME} v{__version__} (protocol {PROTOCOL_VERSION})")


if __name__ == "__main__":
    app()
