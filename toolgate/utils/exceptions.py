"""
Exception hierarchy and error handling utilities for toolgate.

Provides:
- Custom exception classes with error codes
- Error categorization (validation, permission, rate limit, fatal, ...)
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RECOVERABLE = "recoverable"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    PROTOCOL = "protocol"


class ToolgateError(Exception):
    """Base exception for all toolgate errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(ToolgateError):
    """Input validation error, always tied to the offending field."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", category=ErrorCategory.VALIDATION, details=details)
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class NotFoundError(ToolgateError):
    """Resource not found error."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            code="NOT_FOUND",
            category=ErrorCategory.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PermissionError(ToolgateError):
    """Permission denied error."""

    def __init__(self, message: str, resource: str | None = None):
        details = {"resource": resource} if resource else {}
        super().__init__(message, code="PERMISSION_DENIED", category=ErrorCategory.PERMISSION, details=details)


class RateLimitError(ToolgateError):
    """Rate limit exceeded error."""

    def __init__(self, service: str, retry_after: float | None = None):
        message = f"Rate limit exceeded for {service}"
        if retry_after:
            message += f", retry after {retry_after}s"
        super().__init__(
            message,
            code="RATE_LIMIT",
            category=ErrorCategory.RATE_LIMIT,
            details={"service": service, "retry_after": retry_after},
        )


class ToolError(ToolgateError):
    """Downstream capability failed while executing a tool call."""

    def __init__(
        self,
        tool_name: str,
        message: str,
        is_recoverable: bool = True,
    ):
        category = ErrorCategory.RECOVERABLE if is_recoverable else ErrorCategory.FATAL
        super().__init__(
            message,
            code="TOOL_ERROR",
            category=category,
            details={"tool_name": tool_name, "is_recoverable": is_recoverable},
        )


class ProtocolError(ToolgateError):
    """Envelope-level failure that maps onto a JSON-RPC error code."""

    def __init__(
        self,
        rpc_code: int,
        message: str,
        *,
        request_id: Any = None,
        data: Any = None,
        notification: bool = False,
    ):
        super().__init__(
            message,
            code="PROTOCOL_ERROR",
            category=ErrorCategory.PROTOCOL,
            details={"rpc_code": rpc_code},
        )
        self.rpc_code = rpc_code
        self.request_id = request_id
        self.data = data
        self.notification = notification


class AuditSinkError(ToolgateError):
    """The audit sink could not be opened at startup."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Cannot open audit log {path}: {reason}",
            code="AUDIT_SINK_UNAVAILABLE",
            category=ErrorCategory.FATAL,
            details={"path": path},
        )


class ConfigError(ToolgateError, ValueError):
    """Configuration could not be loaded or is invalid."""

    def __init__(self, message: str, path: str | None = None):
        details = {"path": path} if path else {}
        super().__init__(message, code="CONFIG_ERROR", category=ErrorCategory.FATAL, details=details)


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"[a-zA-Z0-9]{32,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    exc_str = str(exc).lower()

    if isinstance(exc, ToolgateError):
        return exc.code, exc.category, exc.category in (ErrorCategory.RETRYABLE, ErrorCategory.RATE_LIMIT)

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, ValueError):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    if isinstance(exc, KeyError):
        return "MISSING_KEY", ErrorCategory.VALIDATION, False

    if isinstance(exc, TypeError):
        return "TYPE_ERROR", ErrorCategory.VALIDATION, False

    if "rate limit" in exc_str or "429" in exc_str:
        return "RATE_LIMIT", ErrorCategory.RATE_LIMIT, True

    if "timeout" in exc_str or "timed out" in exc_str:
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if "not found" in exc_str:
        return "NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if "permission" in exc_str or "forbidden" in exc_str:
        return "PERMISSION_DENIED", ErrorCategory.PERMISSION, False

    if "connection" in exc_str or "network" in exc_str:
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def format_tool_error(exc: Exception, include_details: bool = False) -> str:
    """Format an exception as the text of a tool-level error result."""
    code, category, _ = classify_exception(exc)

    raw = exc.message if isinstance(exc, ToolgateError) else str(exc)
    message = sanitize_error_message(raw) or exc.__class__.__name__

    if include_details:
        return f"Error [{code}] ({category.value}): {message}"
    return f"Error: {message}"
