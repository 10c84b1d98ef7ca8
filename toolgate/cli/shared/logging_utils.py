"""Loguru sinks for CLI commands. Stdout is reserved for protocol frames."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = "<dim>{time:HH:mm:ss.SSS}</dim> | <level>{level: <8}</level> | <level>{message}</level>"

_SINK_IDS: dict[str, int] = {}


def log_dir() -> Path:
    return Path.home() / ".toolgate" / "logs"


def configure_console_logging(level: str = "WARNING") -> None:
    """Replace loguru's default sink with a stderr sink at `level`."""
    logger.remove()
    _SINK_IDS.clear()
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)
    logger.enable("toolgate")


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_path = log_dir() / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _SINK_IDS[name] = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    return log_path
