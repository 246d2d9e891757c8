"""Resource store abstraction over the orchestration platform.

Provides the optimistic-concurrency ResourceStore contract plus in-memory
and filesystem implementations.
"""
from __future__ import annotations

from trust_reconciler.store.base import (
    CUSTOM_RESOURCE_DEFINITION,
    MUTATING_WEBHOOK_CONFIGURATION,
    POD,
    SECRET,
    VALIDATING_WEBHOOK_CONFIGURATION,
    OperationResult,
    Resource,
    ResourceStore,
    VersionedResourceStore,
    new_resource,
)
from trust_reconciler.store.filesystem import FilesystemResourceStore
from trust_reconciler.store.memory import InMemoryResourceStore

__all__ = [
    "CUSTOM_RESOURCE_DEFINITION",
    "FilesystemResourceStore",
    "InMemoryResourceStore",
    "MUTATING_WEBHOOK_CONFIGURATION",
    "OperationResult",
    "POD",
    "Resource",
    "ResourceStore",
    "SECRET",
    "VALIDATING_WEBHOOK_CONFIGURATION",
    "VersionedResourceStore",
    "new_resource",
]
