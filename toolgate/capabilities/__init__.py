"""Tool and resource catalog consumed by the dispatcher."""

from toolgate.capabilities.registry import (
    ADMIN_OPERATIONS,
    WRITE_OPERATIONS,
    CapabilityDescriptor,
    CapabilityRegistry,
    OperationKind,
    ResourceDescriptor,
    classify_operation,
)

__all__ = [
    "ADMIN_OPERATIONS",
    "WRITE_OPERATIONS",
    "CapabilityDescriptor",
    "CapabilityRegistry",
    "OperationKind",
    "ResourceDescriptor",
    "classify_operation",
]
