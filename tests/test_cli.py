import json

import pytest
from typer.testing import CliRunner

from toolgate import __version__
from toolgate.audit.logger import AuditLogger
from toolgate.cli.commands import app, build_gateway, resolve_config
from toolgate.config.schema import Config
from toolgate.transports import PollingTransport, SSETransport, StdioTransport
from toolgate.utils.exceptions import AuditSinkError

runner = CliRunner()


def test_version_command():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"toolgate v{__version__}" in result.stdout
    assert "2024-11-05" in result.stdout


def test_status_shows_resolved_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"transport": "websocket", "role": "read-write", "audit": {"rateLimitEnabled": False}}))
    result = runner.invoke(app, ["status", "--config", str(path)])
    assert result.exit_code == 0
    assert "Transport: polling" in result.stdout
    assert "Role: read-write" in result.stdout
    assert "disabled" in result.stdout


def test_status_with_broken_config_exits_nonzero(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken")
    result = runner.invoke(app, ["status", "--config", str(path)])
    assert result.exit_code == 1


def test_resolve_config_applies_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"port": 9001, "role": "admin"}')
    config = resolve_config(path, transport="websocket", port=None, role=None)
    assert (config.transport, config.port, config.role) == ("polling", 9001, "admin")


def test_resolve_config_rejects_bad_override(tmp_path):
    with pytest.raises(ValueError):
        resolve_config(tmp_path / "absent.json", port=0)


@pytest.mark.parametrize(
    "transport, cls",
    [("stdio", StdioTransport), ("sse", SSETransport), ("polling", PollingTransport)],
)
def test_build_gateway_selects_transport(transport, cls):
    config = Config(transport=transport, role="read-write")
    gateway = build_gateway(config, audit=AuditLogger(enabled=False))
    assert isinstance(gateway, cls)
    assert gateway.dispatcher.role == "read-write"


def test_build_gateway_shares_queue_settings():
    config = Config(transport="polling", sessions={"queue_size": 3, "receive_timeout_seconds": 2})
    gateway = build_gateway(config, audit=AuditLogger(enabled=False))
    assert gateway.receive_timeout_seconds == 2
    assert gateway.registry.create().outbound.maxsize == 3


def test_unopenable_audit_sink_fails_fast(tmp_path):
    config = Config(audit={"file_path": str(tmp_path / "no-such-dir" / "audit.jsonl")})
    with pytest.raises(AuditSinkError):
        build_gateway(config)
