"""Audit trail, write throttling and argument validation."""

from toolgate.audit.logger import AuditEvent, AuditLogger, Category, Severity
from toolgate.audit.ratelimit import TokenBucketRateLimiter
from toolgate.audit.validator import Validator, sanitize_string

__all__ = [
    "AuditEvent",
    "AuditLogger",
    "Category",
    "Severity",
    "TokenBucketRateLimiter",
    "Validator",
    "sanitize_string",
]
