"""Utility functions for toolgate."""

from toolgate.utils.exceptions import (
    ToolgateError,
    ValidationError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ToolError,
    ProtocolError,
    AuditSinkError,
    ConfigError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
    format_tool_error,
)

__all__ = [
    "ToolgateError",
    "ValidationError",
    "NotFoundError",
    "PermissionError",
    "RateLimitError",
    "ToolError",
    "ProtocolError",
    "AuditSinkError",
    "ConfigError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
    "format_tool_error",
]
