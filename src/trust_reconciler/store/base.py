"""Resource store contract.

ResourceStore defines how the reconciler reads and writes platform
resources. Resources are JSON-shaped dicts mirroring API objects::

    {
        "kind": "Secret",
        "metadata": {"name": ..., "namespace": ..., "labels": {...},
                     "annotations": {...}, "resourceVersion": "3"},
        "data": {...},
    }

Writes are optimistic: :meth:`ResourceStore.update` only succeeds when the
submitted ``metadata.resourceVersion`` matches the stored one.
"""
from __future__ import annotations

import contextlib
import copy
import enum
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator

from trust_reconciler.errors import AlreadyExistsError, ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

Resource = dict[str, Any]
MutateFn = Callable[[Resource], None]

# ------------------------------------------------------------------
# Resource kinds
# ------------------------------------------------------------------

SECRET = "Secret"
POD = "Pod"
VALIDATING_WEBHOOK_CONFIGURATION = "ValidatingWebhookConfiguration"
MUTATING_WEBHOOK_CONFIGURATION = "MutatingWebhookConfiguration"
CUSTOM_RESOURCE_DEFINITION = "CustomResourceDefinition"


class OperationResult(str, enum.Enum):
    """Outcome of :meth:`ResourceStore.create_or_update`."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


def new_resource(kind: str, name: str, namespace: str | None = None) -> Resource:
    """Return an empty resource skeleton with only identity metadata set."""
    metadata: dict[str, Any] = {"name": name}
    if namespace is not None:
        metadata["namespace"] = namespace
    return {"kind": kind, "metadata": metadata}


def resource_key(resource: Resource) -> tuple[str, str | None, str]:
    """Return the ``(kind, namespace, name)`` identity of *resource*."""
    metadata = resource.get("metadata") or {}
    name = metadata.get("name")
    if not resource.get("kind") or not name:
        raise ValueError("resource must carry a kind and metadata.name")
    return resource["kind"], metadata.get("namespace"), name


def labels_match(resource: Resource, selector: dict[str, str] | None) -> bool:
    """Return True if every selector label is present with the same value."""
    if not selector:
        return True
    labels = (resource.get("metadata") or {}).get("labels") or {}
    return all(labels.get(key) == value for key, value in selector.items())


class ResourceStore(ABC):
    """Abstract base class for resource store backends."""

    @abstractmethod
    def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        """Return a copy of the stored resource.

        Raises
        ------
        NotFoundError
            If no such resource exists.
        """

    @abstractmethod
    def create(self, resource: Resource) -> Resource:
        """Persist a new resource and return the committed copy.

        Raises
        ------
        AlreadyExistsError
            If a resource with the same identity already exists.
        """

    @abstractmethod
    def update(self, resource: Resource) -> Resource:
        """Replace a resource conditioned on its ``metadata.resourceVersion``.

        Raises
        ------
        ConflictError
            If the submitted version is not the stored version.
        NotFoundError
            If the resource no longer exists.
        """

    @abstractmethod
    def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        """Return copies of all resources of *kind* matching *labels*."""

    def create_or_update(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        mutate: MutateFn,
    ) -> tuple[Resource, OperationResult]:
        """Create the resource if absent, otherwise read-modify-write it.

        *mutate* receives the current document (or an empty skeleton) and
        edits it in place. When the mutation leaves the document unchanged
        no write is issued.
        """
        try:
            current = self.get(kind, name, namespace)
        except NotFoundError:
            skeleton = new_resource(kind, name, namespace)
            mutate(skeleton)
            return self.create(skeleton), OperationResult.CREATED

        desired = copy.deepcopy(current)
        mutate(desired)
        if desired == current:
            return current, OperationResult.UNCHANGED
        return self.update(desired), OperationResult.UPDATED


class VersionedResourceStore(ResourceStore):
    """Shared optimistic-concurrency semantics over a raw key/value backend.

    Subclasses provide :meth:`_load`, :meth:`_save` and :meth:`_iter_resources`;
    this class handles copying, version checks and version bumps under a
    single lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _load(self, key: tuple[str, str | None, str]) -> Resource | None:
        """Return the stored document for *key* or None."""

    @abstractmethod
    def _save(self, key: tuple[str, str | None, str], resource: Resource) -> None:
        """Store *resource* under *key*."""

    @abstractmethod
    def _iter_resources(self, kind: str) -> Iterator[Resource]:
        """Yield every stored document of *kind*."""

    # ------------------------------------------------------------------
    # ResourceStore interface
    # ------------------------------------------------------------------

    def get(self, kind: str, name: str, namespace: str | None = None) -> Resource:
        with self._lock, _backend_errors("read", kind, name):
            stored = self._load((kind, namespace, name))
        if stored is None:
            raise NotFoundError(kind, name, namespace)
        return copy.deepcopy(stored)

    def create(self, resource: Resource) -> Resource:
        key = resource_key(resource)
        committed = copy.deepcopy(resource)
        with self._lock, _backend_errors("create", key[0], key[2]):
            if self._load(key) is not None:
                raise AlreadyExistsError(key[0], key[2], key[1])
            committed["metadata"]["resourceVersion"] = "1"
            self._save(key, committed)
        logger.debug("Created %s %s/%s", key[0], key[1] or "-", key[2])
        return copy.deepcopy(committed)

    def update(self, resource: Resource) -> Resource:
        key = resource_key(resource)
        submitted_version = resource["metadata"].get("resourceVersion")
        committed = copy.deepcopy(resource)
        with self._lock, _backend_errors("update", key[0], key[2]):
            stored = self._load(key)
            if stored is None:
                raise NotFoundError(key[0], key[2], key[1])
            current_version = stored["metadata"].get("resourceVersion")
            if submitted_version != current_version:
                raise ConflictError(key[0], key[2], submitted_version, current_version)
            committed["metadata"]["resourceVersion"] = str(int(current_version) + 1)
            self._save(key, committed)
        logger.debug(
            "Updated %s %s/%s to resourceVersion %s",
            key[0],
            key[1] or "-",
            key[2],
            committed["metadata"]["resourceVersion"],
        )
        return copy.deepcopy(committed)

    def list(
        self,
        kind: str,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        with self._lock, _backend_errors("list", kind, None):
            matches = [
                copy.deepcopy(resource)
                for resource in self._iter_resources(kind)
                if (namespace is None or resource["metadata"].get("namespace") == namespace)
                and labels_match(resource, labels)
            ]
        return sorted(matches, key=lambda r: (r["metadata"].get("namespace") or "", r["metadata"]["name"]))


@contextlib.contextmanager
def _backend_errors(operation: str, kind: str, name: str | None) -> Iterator[None]:
    """Re-raise backend I/O and decoding failures as :class:`StoreError`."""
    try:
        yield
    except (OSError, ValueError) as exc:
        logger.error("Backend failed to %s %s %s: %s", operation, kind, name or "*", exc)
        raise StoreError(operation, kind, name, exc) from exc
