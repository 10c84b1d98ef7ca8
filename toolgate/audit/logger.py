"""Append-only audit trail for every pipeline-relevant operation.

Each event is written synchronously as one JSON line to the configured sink
(a file opened for append, or stderr) and kept in a bounded in-memory ring for
introspection. Sink and serialization failures never reach the caller.
"""

from __future__ import annotations

import json
import sys
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TextIO

from loguru import logger

from toolgate.utils.exceptions import AuditSinkError

DEFAULT_BUFFER_SIZE = 100


class Severity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    AUDIT = "AUDIT"


class Category(str, Enum):
    READ = "READ"
    WRITE = "WRITE"
    ADMIN = "ADMIN"
    AUTH = "AUTH"
    SYSTEM = "SYSTEM"


@dataclass
class AuditEvent:
    """A single audit record."""

    severity: Severity
    category: Category
    operation: str
    success: bool = True
    timestamp: datetime | None = None
    namespace: str | None = None
    set_name: str | None = None
    key: str | None = None
    user: str | None = None
    client_id: str | None = None
    duration_ns: int = 0
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    record_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "level": self.severity.value,
            "category": self.category.value,
            "operation": self.operation,
            "duration_ns": self.duration_ns,
            "success": self.success,
        }
        optional = {
            "namespace": self.namespace,
            "set": self.set_name,
            "key": self.key,
            "user": self.user,
            "client_id": self.client_id,
            "error": self.error,
            "record_count": self.record_count,
        }
        out.update({k: v for k, v in optional.items() if v not in (None, "")})
        if self.details:
            out["details"] = self.details
        return out


class AuditLogger:
    """Synchronous audit sink with a fixed-capacity ring of recent events."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        file_path: str = "",
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        stream: TextIO | None = None,
    ):
        self._enabled = enabled
        self._lock = threading.Lock()
        self._owns_stream = False
        self._recent: deque[AuditEvent] = deque(maxlen=buffer_size if buffer_size > 0 else DEFAULT_BUFFER_SIZE)
        if stream is not None:
            self._stream: TextIO = stream
        elif file_path and enabled:
            try:
                self._stream = open(file_path, "a", encoding="utf-8")
            except OSError as e:
                raise AuditSinkError(file_path, str(e)) from e
            self._owns_stream = True
        else:
            self._stream = sys.stderr

    @classmethod
    def from_config(cls, audit_config: Any, **kwargs: Any) -> "AuditLogger":
        return cls(
            enabled=audit_config.enabled,
            file_path=audit_config.file_path,
            buffer_size=audit_config.buffer_size,
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def log(self, event: AuditEvent) -> None:
        """Record an audit event."""
        if not self._enabled:
            return
        if event.timestamp is None:
            event.timestamp = datetime.now(timezone.utc)
        with self._lock:
            try:
                line = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
                self._stream.write(line + "\n")
                self._stream.flush()
            except Exception as e:
                logger.warning("Audit sink write failed for {}: {}", event.operation, e)
            self._recent.append(event)

    def log_read(
        self,
        operation: str,
        *,
        namespace: str | None = None,
        set_name: str | None = None,
        key: str | None = None,
        record_count: int | None = None,
        duration_ns: int = 0,
        error: str | None = None,
        user: str | None = None,
        client_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.log(AuditEvent(
            severity=Severity.ERROR if error else Severity.INFO,
            category=Category.READ,
            operation=operation,
            namespace=namespace,
            set_name=set_name,
            key=key,
            record_count=record_count,
            duration_ns=duration_ns,
            success=error is None,
            error=error,
            user=user,
            client_id=client_id,
            details=details or {},
        ))

    def log_write(
        self,
        operation: str,
        *,
        namespace: str | None = None,
        set_name: str | None = None,
        key: str | None = None,
        record_count: int | None = None,
        duration_ns: int = 0,
        error: str | None = None,
        user: str | None = None,
        client_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.log(AuditEvent(
            severity=Severity.ERROR if error else Severity.AUDIT,
            category=Category.WRITE,
            operation=operation,
            namespace=namespace,
            set_name=set_name,
            key=key,
            record_count=record_count,
            duration_ns=duration_ns,
            success=error is None,
            error=error,
            user=user,
            client_id=client_id,
            details=details or {},
        ))

    def log_admin(
        self,
        operation: str,
        *,
        namespace: str | None = None,
        set_name: str | None = None,
        details: dict[str, Any] | None = None,
        duration_ns: int = 0,
        error: str | None = None,
        user: str | None = None,
        client_id: str | None = None,
    ) -> None:
        self.log(AuditEvent(
            severity=Severity.ERROR if error else Severity.AUDIT,
            category=Category.ADMIN,
            operation=operation,
            namespace=namespace,
            set_name=set_name,
            duration_ns=duration_ns,
            success=error is None,
            error=error,
            user=user,
            client_id=client_id,
            details=details or {},
        ))

    def log_auth(
        self,
        operation: str,
        *,
        success: bool,
        error: str | None = None,
        user: str | None = None,
        client_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.log(AuditEvent(
            severity=Severity.AUDIT if success else Severity.WARNING,
            category=Category.AUTH,
            operation=operation,
            success=success,
            error=error,
            user=user,
            client_id=client_id,
            details=details or {},
        ))

    def log_system(
        self,
        operation: str,
        *,
        success: bool = True,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.log(AuditEvent(
            severity=Severity.INFO if success else Severity.ERROR,
            category=Category.SYSTEM,
            operation=operation,
            success=success,
            error=error,
            details=details or {},
        ))

    def get_recent_events(self, count: int) -> list[AuditEvent]:
        """Return up to `count` most recent events, oldest first."""
        with self._lock:
            if count <= 0:
                return []
            return list(self._recent)[-count:]

    def close(self) -> None:
        with self._lock:
            if self._owns_stream:
                try:
                    self._stream.close()
                except OSError as e:
                    logger.warning("Audit sink close failed: {}", e)
                self._owns_stream = False
