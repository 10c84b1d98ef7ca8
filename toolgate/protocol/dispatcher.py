"""Request dispatcher: raw frame in, zero or one serialized response out.

Pipeline for `capabilities/call`:
  version check -> method lookup -> param decode -> role gate
  -> rate limit (mutating only) -> argument screening -> invocation -> audit

Admission and downstream failures come back as tool-level error results so a
caller can tell "try again later" apart from a malformed request.
"""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable

from loguru import logger

from toolgate import PROTOCOL_VERSION, SERVER_NAME, __version__
from toolgate.audit.logger import AuditEvent, AuditLogger, Category, Severity
from toolgate.audit.ratelimit import TokenBucketRateLimiter
from toolgate.audit.validator import Validator
from toolgate.capabilities.registry import (
    CapabilityDescriptor,
    CapabilityRegistry,
    OperationKind,
    classify_operation,
)
from toolgate.protocol.codec import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    WIRE_VERSION,
    Envelope,
    Response,
    StructuredError,
    decode,
    encode,
    protocol_error,
)
from toolgate.protocol.context import CallContext
from toolgate.protocol.error_boundary import (
    RATE_LIMITED_TEXT,
    invalid_params_error,
    tool_error_result,
    tool_success_result,
    unhandled_exception_error,
    unknown_method_error,
)
from toolgate.protocol.methods import Method, lookup_method
from toolgate.utils.exceptions import (
    PermissionError,
    ProtocolError,
    ValidationError,
    format_tool_error,
    sanitize_error_message,
)

MethodHandler = Callable[[Any, CallContext], Awaitable[Any]]

_CATEGORY_FOR_KIND = {
    OperationKind.READ: Category.READ,
    OperationKind.WRITE: Category.WRITE,
    OperationKind.ADMIN: Category.ADMIN,
}

_ROLE_REQUIRED = {
    OperationKind.WRITE: "read-write",
    OperationKind.ADMIN: "admin",
}

# Record-level operations that must name a namespace and key.
_RECORD_OPERATIONS = frozenset({"get_record", "put_record", "delete_record", "operate", "execute_udf"})

_BATCH_FIELDS = ("keys", "operations", "records")


def role_permits(role: str, kind: OperationKind) -> bool:
    if kind is OperationKind.READ:
        return True
    if kind is OperationKind.WRITE:
        return role in ("read-write", "admin")
    return role == "admin"


def _scalar(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _batch_count(arguments: dict[str, Any]) -> int | None:
    for name in _BATCH_FIELDS:
        value = arguments.get(name)
        if isinstance(value, list):
            return len(value)
    return None


class Dispatcher:
    """
    Routes decoded envelopes through the closed method table.

    Holds no mutable state of its own: the rate limiter and audit log carry
    their own locks, so one dispatcher serves every session concurrently.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        rate_limiter: TokenBucketRateLimiter | None = None,
        validator: Validator | None = None,
        audit: AuditLogger | None = None,
        role: str = "read-only",
        server_name: str = SERVER_NAME,
        server_version: str = __version__,
    ):
        registry.freeze()
        self._registry = registry
        self._rate_limiter = rate_limiter or TokenBucketRateLimiter()
        self._validator = validator or Validator()
        self._audit = audit or AuditLogger(enabled=False)
        self.role = role
        self.server_name = server_name
        self.server_version = server_version
        self._capabilities: dict[str, CapabilityDescriptor] = {d.name: d for d in registry.list_tools()}
        self._handlers: dict[Method, MethodHandler] = {
            Method.INITIALIZE: self._initialize,
            Method.INITIALIZED: self._no_result,
            Method.PING: self._ping,
            Method.SHUTDOWN: self._no_result,
            Method.CAPABILITIES_LIST: self._list_capabilities,
            Method.CAPABILITIES_CALL: self._call_capability,
            Method.RESOURCES_LIST: self._list_resources,
            Method.RESOURCES_READ: self._read_resource,
            Method.PROMPTS_LIST: self._list_prompts,
        }

    @classmethod
    def from_config(cls, config: Any, registry: CapabilityRegistry, *, audit: AuditLogger | None = None) -> "Dispatcher":
        return cls(
            registry,
            rate_limiter=TokenBucketRateLimiter.from_config(config.audit),
            validator=Validator(config.validator),
            audit=audit if audit is not None else AuditLogger.from_config(config.audit),
            role=config.role,
        )

    @property
    def audit(self) -> AuditLogger:
        return self._audit

    @property
    def rate_limiter(self) -> TokenBucketRateLimiter:
        return self._rate_limiter

    async def handle(self, raw: bytes | str, ctx: CallContext) -> bytes | None:
        """Decode, dispatch and encode one frame. Never raises for bad input."""
        try:
            envelope = decode(raw)
        except ProtocolError as e:
            if e.notification:
                logger.debug("Dropping malformed notification: {}", e.data)
                return None
            logger.debug("Rejecting frame [{}]: {}", e.rpc_code, e.data)
            return encode(Response.failure(e.request_id, StructuredError.from_exception(e)))
        response = await self.dispatch(envelope, ctx)
        return encode(response) if response is not None else None

    async def dispatch(self, envelope: Envelope, ctx: CallContext) -> Response | None:
        """Run one envelope through the pipeline; None for notifications."""
        response = await self._dispatch(envelope, ctx)
        if envelope.is_notification:
            return None
        return response

    async def _dispatch(self, envelope: Envelope, ctx: CallContext) -> Response:
        if envelope.version != WIRE_VERSION:
            return Response.failure(envelope.id, StructuredError.of(INVALID_REQUEST, "version must be '2.0'"))

        method = lookup_method(envelope.method)
        if method is None:
            return Response.failure(envelope.id, unknown_method_error(method=envelope.method))

        handler = self._handlers[method]
        try:
            result = await handler(envelope.params, ctx)
        except ProtocolError as e:
            return Response.failure(envelope.id, StructuredError.from_exception(e))
        except Exception as e:
            return Response.failure(
                envelope.id,
                unhandled_exception_error(method=envelope.method, exc=e, log_exception=logger.exception),
            )
        return Response.success(envelope.id, result)

    # Lifecycle

    async def _initialize(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        client_info = params.get("clientInfo") if isinstance(params, dict) else None
        if isinstance(client_info, dict):
            logger.info("Client connected: {} {}", client_info.get("name", ""), client_info.get("version", ""))
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
            "serverInfo": {"name": self.server_name, "version": self.server_version},
        }

    async def _no_result(self, params: Any, ctx: CallContext) -> None:
        return None

    async def _ping(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        return {}

    async def _list_prompts(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        return {"prompts": []}

    # Capabilities

    async def _list_capabilities(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        tools = [
            d.to_dict() for d in self._capabilities.values()
            if role_permits(self.role, d.category or classify_operation(d.name))
        ]
        return {"tools": tools}

    async def _call_capability(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        if not isinstance(params, dict):
            raise protocol_error(INVALID_PARAMS, "params must be an object")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise protocol_error(INVALID_PARAMS, "name must be a non-empty string")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise protocol_error(INVALID_PARAMS, "arguments must be an object")

        descriptor = self._capabilities.get(name)
        kind = descriptor.category if descriptor and descriptor.category else classify_operation(name)
        category = _CATEGORY_FOR_KIND[kind]
        namespace = _scalar(arguments.get("namespace"))
        set_name = _scalar(arguments.get("set_name", arguments.get("set")))
        key = _scalar(arguments.get("key"))

        if not role_permits(self.role, kind):
            required = _ROLE_REQUIRED[kind]
            self._audit.log_auth(
                name,
                success=False,
                error="permission denied",
                user=ctx.user,
                client_id=ctx.client_id,
                details={**ctx.audit_details(), "role": self.role, "required_role": required},
            )
            denied = PermissionError(f"permission denied: {name} requires the {required} role", resource=name)
            return tool_error_result(format_tool_error(denied))

        if kind.mutating and not self._rate_limiter.allow():
            logger.warning("Rate limit exceeded for {} (session={})", name, ctx.session_id or "-")
            self._audit.log(AuditEvent(
                severity=Severity.WARNING,
                category=category,
                operation=name,
                success=False,
                error="rate limit exceeded",
                namespace=namespace,
                set_name=set_name,
                key=key,
                user=ctx.user,
                client_id=ctx.client_id,
                details=ctx.audit_details(),
            ))
            return tool_error_result(RATE_LIMITED_TEXT)

        try:
            self._screen_arguments(name, arguments)
        except ValidationError as e:
            self._audit.log(AuditEvent(
                severity=Severity.ERROR,
                category=category,
                operation=name,
                success=False,
                error=str(e),
                namespace=namespace,
                set_name=set_name,
                key=key,
                user=ctx.user,
                client_id=ctx.client_id,
                details=ctx.audit_details(),
            ))
            raise invalid_params_error(e) from e

        start = time.perf_counter_ns()
        error_text: str | None = None
        result: dict[str, Any]
        try:
            value = await self._registry.call(name, arguments)
            result = tool_success_result(value)
        except Exception as e:
            result = tool_error_result(format_tool_error(e))
            error_text = result["content"][0]["text"].removeprefix("Error: ")
            logger.warning("Capability {} failed: {}", name, error_text)
        duration_ns = time.perf_counter_ns() - start

        self._record_call(
            kind,
            name,
            ctx,
            namespace=namespace,
            set_name=set_name,
            key=key,
            record_count=_batch_count(arguments),
            duration_ns=duration_ns,
            error=error_text,
        )
        return result

    def _record_call(
        self,
        kind: OperationKind,
        name: str,
        ctx: CallContext,
        *,
        namespace: str | None,
        set_name: str | None,
        key: str | None,
        record_count: int | None,
        duration_ns: int,
        error: str | None,
    ) -> None:
        # Identifiers only; bins, operation values and code never reach the trail.
        common = dict(
            duration_ns=duration_ns,
            error=error,
            user=ctx.user,
            client_id=ctx.client_id,
            details=ctx.audit_details(),
        )
        if kind is OperationKind.READ:
            self._audit.log_read(name, namespace=namespace, set_name=set_name, key=key, record_count=record_count, **common)
        elif kind is OperationKind.WRITE:
            self._audit.log_write(name, namespace=namespace, set_name=set_name, key=key, record_count=record_count, **common)
        else:
            self._audit.log_admin(name, namespace=namespace, set_name=set_name, **common)

    def _screen_arguments(self, name: str, arguments: dict[str, Any]) -> None:
        v = self._validator
        if "namespace" in arguments or name in _RECORD_OPERATIONS:
            v.validate_namespace(arguments.get("namespace"))
        if "set_name" in arguments:
            v.validate_set_name(arguments["set_name"])
        elif "set" in arguments:
            v.validate_set_name(arguments["set"])
        if "key" in arguments or name in _RECORD_OPERATIONS:
            v.validate_key(arguments.get("key"))
        if "bins" in arguments:
            bins = arguments["bins"]
            if isinstance(bins, list):
                v.validate_bin_list(bins)
            else:
                v.validate_bins(bins)
                v.validate_record_size(bins)
        if "bin_name" in arguments:
            v.validate_bin_name(arguments["bin_name"])
        if "index_name" in arguments:
            v.validate_index_name(arguments["index_name"])
        if "code" in arguments:
            v.validate_udf_code(arguments["code"])
        if "module_name" in arguments:
            v.validate_module_name(arguments["module_name"])
        for field in _BATCH_FIELDS:
            if field not in arguments:
                continue
            items = arguments[field]
            if not isinstance(items, list):
                raise ValidationError("must be a list", field=field)
            v.validate_batch_size(len(items))
            for item in items:
                if field == "keys":
                    v.validate_key(item)
                elif isinstance(item, dict):
                    self._screen_batch_item(item)

    def _screen_batch_item(self, item: dict[str, Any]) -> None:
        v = self._validator
        if "namespace" in item:
            v.validate_namespace(item["namespace"])
        if "set_name" in item:
            v.validate_set_name(item["set_name"])
        if "key" in item:
            v.validate_key(item["key"])
        if "bins" in item:
            bins = item["bins"]
            if isinstance(bins, list):
                v.validate_bin_list(bins)
            else:
                v.validate_bins(bins)
                v.validate_record_size(bins)
        if "bin_name" in item:
            v.validate_bin_name(item["bin_name"])

    # Resources

    async def _list_resources(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        return {"resources": [d.to_dict() for d in self._registry.list_resources()]}

    async def _read_resource(self, params: Any, ctx: CallContext) -> dict[str, Any]:
        uri = params.get("uri") if isinstance(params, dict) else None
        if not isinstance(uri, str) or not uri:
            raise protocol_error(INVALID_PARAMS, "uri must be a non-empty string")
        if not self._registry.has_resource(uri):
            raise protocol_error(INVALID_PARAMS, f"unknown resource: {uri}")

        start = time.perf_counter_ns()
        try:
            text, mime_type = await self._registry.read_resource(uri)
        except Exception as e:
            message = sanitize_error_message(str(e)) or e.__class__.__name__
            self._audit.log_read(
                "resources/read",
                duration_ns=time.perf_counter_ns() - start,
                error=message,
                user=ctx.user,
                client_id=ctx.client_id,
                details={**ctx.audit_details(), "uri": uri},
            )
            raise ProtocolError(INTERNAL_ERROR, "Failed to read resource", data=message) from e

        self._audit.log_read(
            "resources/read",
            duration_ns=time.perf_counter_ns() - start,
            user=ctx.user,
            client_id=ctx.client_id,
            details={**ctx.audit_details(), "uri": uri},
        )
        return {"contents": [{"uri": uri, "mimeType": mime_type, "text": text}]}
