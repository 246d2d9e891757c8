"""Filesystem-backed resource store.

Each resource is persisted as a JSON document under *base_dir*, laid out
as ``<kind>/<namespace>/<name>.json``. Cluster-scoped resources use the
``_cluster`` directory in place of a namespace.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterator

from trust_reconciler.store.base import Resource, VersionedResourceStore

_CLUSTER_SCOPE = "_cluster"


class FilesystemResourceStore(VersionedResourceStore):
    """JSON-file :class:`~trust_reconciler.store.base.ResourceStore`.

    Writes go to a temporary sibling file that is then renamed over the
    target, so a reader never observes a partially written document.

    Parameters
    ----------
    base_dir:
        Root directory for resource documents. Created if missing.
    """

    def __init__(self, base_dir: Path) -> None:
        super().__init__()
        self._base_dir = base_dir
        self._base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    def _load(self, key: tuple[str, str | None, str]) -> Resource | None:
        path = self._path(key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _save(self, key: tuple[str, str | None, str], resource: Resource) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(resource, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, path)

    def _iter_resources(self, kind: str) -> Iterator[Resource]:
        kind_dir = self._base_dir / kind
        if not kind_dir.is_dir():
            return
        for path in sorted(kind_dir.glob("*/*.json")):
            yield json.loads(path.read_text(encoding="utf-8"))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _path(self, key: tuple[str, str | None, str]) -> Path:
        kind, namespace, name = key
        safe_name = name.replace("/", "_").replace("\\", "_")
        return self._base_dir / kind / (namespace or _CLUSTER_SCOPE) / f"{safe_name}.json"
