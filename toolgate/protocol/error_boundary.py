"""Error-boundary helpers mapping failures onto protocol or tool-level results."""

from __future__ import annotations

import json
from typing import Any, Callable

from toolgate.protocol.codec import INTERNAL_ERROR, INVALID_PARAMS, METHOD_NOT_FOUND, StructuredError, protocol_error
from toolgate.utils.exceptions import ProtocolError, ValidationError, classify_exception, sanitize_error_message

RATE_LIMITED_TEXT = "Error: rate limit exceeded, please try again later"


def unknown_method_error(*, method: str) -> StructuredError:
    """Build standardized unknown-method error."""
    return StructuredError.of(METHOD_NOT_FOUND, method)


def invalid_params_error(exc: ValidationError) -> ProtocolError:
    """Map a validator failure to InvalidParams carrying {field, message}."""
    return protocol_error(INVALID_PARAMS, {"field": exc.field or "", "message": exc.message})


def unhandled_exception_error(
    *,
    method: str,
    exc: Exception,
    log_exception: Callable[[str, Any, Any, Any], None],
) -> StructuredError:
    """Map unexpected exceptions to a sanitized INTERNAL_ERROR."""
    code, category, _ = classify_exception(exc)
    sanitized = sanitize_error_message(str(exc))
    log_exception("Method {} failed with [{}]: {}", method, code, sanitized)
    return StructuredError(
        code=INTERNAL_ERROR,
        message=sanitized or "Internal error",
        data={"error_code": code, "category": category.value},
    )


def tool_error_result(text: str) -> dict[str, Any]:
    """A well-formed call result flagged as failed."""
    return {"content": [{"type": "text", "text": text}], "isError": True}


def tool_success_result(value: Any) -> dict[str, Any]:
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return {"content": [{"type": "text", "text": text}]}
