"""Fleet notification — tell sibling processes to reload trust material.

Every process of the fleet watches its own pod annotations. Stamping the
freshness annotation makes it reload the CA bundle and serving certificate
in memory instead of restarting.
"""
from __future__ import annotations

import datetime
import logging
import os
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

from trust_reconciler.certificates.material import TrustMaterial, material_fingerprint
from trust_reconciler.concurrency import FanOut
from trust_reconciler.encoding import format_timestamp
from trust_reconciler.errors import (
    DiscoveryError,
    NotFoundError,
    PropagationError,
    ReconcileCancelled,
    TrustReconcilerError,
)
from trust_reconciler.retry import DEFAULT_RETRY, RetryPolicy, retry_on_conflict
from trust_reconciler.store.base import POD, Resource, ResourceStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class FleetMember:
    """One process instance of the fleet, identified by its pod."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict, compare=False)


class FleetResolver(ABC):
    """Identifies the running instance and its identically-labelled peers."""

    @abstractmethod
    def resolve_self(self) -> FleetMember:
        """Return the member this process runs as.

        Raises
        ------
        DiscoveryError
            If the running instance cannot be identified.
        """

    @abstractmethod
    def list_peers(self, member: FleetMember) -> list[FleetMember]:
        """Return every member sharing *member*'s labels, *member* included.

        Raises
        ------
        DiscoveryError
            If the peers cannot be listed.
        """


class PodFleetResolver(FleetResolver):
    """Resolves the fleet from the pod named after this host.

    Parameters
    ----------
    store:
        Resource store holding the pods.
    namespace:
        Namespace the pods run in; defaults to the ``NAMESPACE``
        environment variable.
    hostname:
        Name of this process's pod; defaults to the host name.
    """

    def __init__(
        self,
        store: ResourceStore,
        namespace: str | None = None,
        hostname: str | None = None,
    ) -> None:
        self._store = store
        self._namespace = namespace if namespace is not None else os.environ.get("NAMESPACE", "")
        self._hostname = hostname if hostname is not None else socket.gethostname()

    def resolve_self(self) -> FleetMember:
        if not self._namespace:
            raise DiscoveryError("pod namespace is unknown, NAMESPACE is not set")
        try:
            pod = self._store.get(POD, self._hostname, self._namespace)
        except NotFoundError as exc:
            raise DiscoveryError(
                f"cannot retrieve the leader pod {self._namespace}/{self._hostname}, "
                "probably running out of the cluster"
            ) from exc
        return _member_from_pod(pod)

    def list_peers(self, member: FleetMember) -> list[FleetMember]:
        if not member.labels:
            raise DiscoveryError(f"pod {member.namespace}/{member.name} carries no labels")
        pods = self._store.list(POD, namespace=member.namespace, labels=member.labels)
        return [_member_from_pod(pod) for pod in pods]


def _member_from_pod(pod: Resource) -> FleetMember:
    metadata = pod["metadata"]
    return FleetMember(
        name=metadata["name"],
        namespace=metadata.get("namespace", ""),
        labels=dict(metadata.get("labels") or {}),
    )


class FleetNotifier:
    """Stamps fleet members so they reload the current trust material.

    A member is stamped with the current time in *annotation* and the
    material fingerprint in *fingerprint_annotation*. Members already
    carrying the current fingerprint are left alone; a renewed serving
    certificate changes the fingerprint even when the CA is unchanged.

    Parameters
    ----------
    store:
        Resource store holding the pods.
    annotation:
        Name of the freshness annotation.
    fingerprint_annotation:
        Name of the annotation recording the announced material.
    retry_policy:
        Conflict retry budget per member.
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        store: ResourceStore,
        annotation: str,
        fingerprint_annotation: str,
        retry_policy: RetryPolicy = DEFAULT_RETRY,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._annotation = annotation
        self._fingerprint_annotation = fingerprint_annotation
        self._retry_policy = retry_policy
        self._clock = clock

    def discover(self, resolver: FleetResolver) -> list[FleetMember]:
        """Return the fleet the running instance belongs to.

        Raises
        ------
        DiscoveryError
            If the resolver cannot identify the fleet.
        """
        try:
            leader = resolver.resolve_self()
            members = resolver.list_peers(leader)
        except TrustReconcilerError as exc:
            if isinstance(exc, DiscoveryError):
                raise
            raise DiscoveryError(f"cannot list fleet members: {exc}") from exc
        logger.debug("Discovered %d fleet member(s) from %s", len(members), leader.name)
        return members

    def submit(self, group: FanOut, members: list[FleetMember], material: TrustMaterial) -> None:
        """Schedule one notification task per member on *group*."""
        fingerprint = material_fingerprint(material)
        for member in members:
            group.submit(f"pod/{member.name}", self.notify_member, member, fingerprint, group.cancel)

    def notify_member(
        self,
        member: FleetMember,
        fingerprint: str,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Stamp *member* unless it already knows *fingerprint*.

        Returns
        -------
        bool
            True if the pod was updated.

        Raises
        ------
        PropagationError
            If the pod could not be updated within the retry budget.
        """

        def attempt() -> bool:
            try:
                pod = self._store.get(POD, member.name, member.namespace)
            except NotFoundError:
                logger.debug("Pod %s/%s is gone, skipping", member.namespace, member.name)
                return False
            annotations = pod["metadata"].setdefault("annotations", {})
            if annotations.get(self._fingerprint_annotation) == fingerprint:
                return False
            annotations[self._annotation] = format_timestamp(self._clock())
            annotations[self._fingerprint_annotation] = fingerprint
            self._store.update(pod)
            return True

        try:
            changed = retry_on_conflict(self._retry_policy, attempt, cancel)
        except ReconcileCancelled:
            raise
        except TrustReconcilerError as exc:
            logger.error("Cannot update pod %s/%s: %s", member.namespace, member.name, exc)
            raise PropagationError(POD, member.name, exc) from exc

        if changed:
            logger.info("Notified pod %s/%s of new trust material", member.namespace, member.name)
        return changed
