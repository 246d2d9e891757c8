"""In-memory resource store.

Thread-safe and versioned; suitable for tests and for embedding the
reconciler in processes that keep their own state.
"""
from __future__ import annotations

from typing import Iterator

from trust_reconciler.store.base import Resource, VersionedResourceStore


class InMemoryResourceStore(VersionedResourceStore):
    """Dict-backed :class:`~trust_reconciler.store.base.ResourceStore`.

    Example
    -------
    ::

        store = InMemoryResourceStore()
        store.create({"kind": "Secret", "metadata": {"name": "tls", "namespace": "system"}})
        secret = store.get("Secret", "tls", "system")
    """

    def __init__(self) -> None:
        super().__init__()
        self._resources: dict[tuple[str, str | None, str], Resource] = {}
        self._writes = 0

    @property
    def write_count(self) -> int:
        """Total number of committed creates and updates."""
        return self._writes

    def _load(self, key: tuple[str, str | None, str]) -> Resource | None:
        return self._resources.get(key)

    def _save(self, key: tuple[str, str | None, str], resource: Resource) -> None:
        self._resources[key] = resource
        self._writes += 1

    def _iter_resources(self, kind: str) -> Iterator[Resource]:
        for (stored_kind, _, _), resource in self._resources.items():
            if stored_kind == kind:
                yield resource
