"""Capability registry: the catalog of tools and read-only resources.

The gateway consumes this catalog; it does not own the operations behind it.
Handlers may be plain functions or coroutines, and are registered before the
dispatcher is built. Once frozen the catalog is fixed for the process lifetime.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from toolgate.utils.exceptions import NotFoundError

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any] | Any]
ResourceReader = Callable[[], Awaitable[str] | str]


class OperationKind(str, Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def mutating(self) -> bool:
        return self is not OperationKind.READ


WRITE_OPERATIONS = frozenset({"put_record", "delete_record", "batch_write", "operate"})
ADMIN_OPERATIONS = frozenset({"create_index", "drop_index", "truncate_set", "register_udf", "remove_udf"})


def classify_operation(name: str) -> OperationKind:
    """Static classification of well-known operation names."""
    if name in WRITE_OPERATIONS:
        return OperationKind.WRITE
    if name in ADMIN_OPERATIONS:
        return OperationKind.ADMIN
    return OperationKind.READ


def _empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass(slots=True)
class CapabilityDescriptor:
    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=_empty_schema)
    category: OperationKind | None = None

    def __post_init__(self) -> None:
        if self.category is None:
            self.category = classify_operation(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


@dataclass(slots=True)
class ResourceDescriptor:
    uri: str
    name: str
    description: str = ""
    mime_type: str = "application/json"

    def to_dict(self) -> dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


class CapabilityRegistry:
    """
    Registry of tools and resources exposed through the gateway.

    Registration raises RuntimeError after `freeze()`; the dispatcher freezes
    the registry it is built from so the catalog cannot drift at runtime.
    """

    def __init__(self) -> None:
        self._tools: dict[str, tuple[CapabilityDescriptor, ToolHandler]] = {}
        self._resources: dict[str, tuple[ResourceDescriptor, ResourceReader]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        self._frozen = True

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("capability registry is frozen")

    def register_tool(self, descriptor: CapabilityDescriptor, handler: ToolHandler) -> None:
        self._check_mutable()
        if descriptor.name in self._tools:
            raise ValueError(f"tool already registered: {descriptor.name}")
        self._tools[descriptor.name] = (descriptor, handler)

    def tool(
        self,
        name: str,
        *,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
        category: OperationKind | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of `register_tool`."""
        def decorator(fn: ToolHandler) -> ToolHandler:
            descriptor = CapabilityDescriptor(
                name=name,
                description=description or (inspect.getdoc(fn) or ""),
                input_schema=input_schema or _empty_schema(),
                category=category,
            )
            self.register_tool(descriptor, fn)
            return fn
        return decorator

    def register_resource(self, descriptor: ResourceDescriptor, reader: ResourceReader) -> None:
        self._check_mutable()
        if descriptor.uri in self._resources:
            raise ValueError(f"resource already registered: {descriptor.uri}")
        self._resources[descriptor.uri] = (descriptor, reader)

    def list_tools(self) -> list[CapabilityDescriptor]:
        return [descriptor for descriptor, _ in self._tools.values()]

    def get_tool(self, name: str) -> CapabilityDescriptor | None:
        entry = self._tools.get(name)
        return entry[0] if entry else None

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    async def call(self, name: str, arguments: dict[str, Any]) -> Any:
        """Invoke a tool handler, awaiting it when it is a coroutine."""
        entry = self._tools.get(name)
        if entry is None:
            raise NotFoundError("Tool", name)
        _, handler = entry
        outcome = handler(arguments)
        return await outcome if inspect.isawaitable(outcome) else outcome

    def list_resources(self) -> list[ResourceDescriptor]:
        return [descriptor for descriptor, _ in self._resources.values()]

    def has_resource(self, uri: str) -> bool:
        return uri in self._resources

    async def read_resource(self, uri: str) -> tuple[str, str]:
        """Return (text, mime_type) for a registered resource."""
        entry = self._resources.get(uri)
        if entry is None:
            raise NotFoundError("Resource", uri)
        descriptor, reader = entry
        outcome = reader()
        text = await outcome if inspect.isawaitable(outcome) else outcome
        return str(text), descriptor.mime_type

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
