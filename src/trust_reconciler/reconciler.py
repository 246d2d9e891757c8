"""One pass of the trust-root lifecycle.

A pass reads the trust secret, regenerates the material when needed,
pushes the CA bundle to every consumer and fleet member concurrently, and
returns when the next pass must run at the latest.
"""
from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from trust_reconciler.certificates.ca import CertificateAuthority
from trust_reconciler.certificates.material import CA_CERT_KEY
from trust_reconciler.certificates.validation import load_certificate
from trust_reconciler.concurrency import FanOut
from trust_reconciler.config import TLSConfiguration
from trust_reconciler.errors import (
    DiscoveryError,
    MissingCABundleError,
    ReconcileCancelled,
    TrustReconcilerError,
)
from trust_reconciler.fleet import FleetMember, FleetNotifier, FleetResolver, PodFleetResolver
from trust_reconciler.propagation import PropagationCoordinator
from trust_reconciler.rotation import AuthorityFactory, regenerate, should_rotate
from trust_reconciler.schedule import compute_requeue_after
from trust_reconciler.store.base import ResourceStore
from trust_reconciler.triggers import ReconcileRequest
from trust_reconciler.truststore import TrustStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class ReconcileResult:
    """Outcome of a successful reconciliation pass.

    Parameters
    ----------
    requeue_after:
        Delay until the next forced pass, or None when the pass is purely
        event driven.
    rotated:
        True if new trust material was generated and persisted.
    fleet_members:
        Number of fleet members notified or confirmed up to date; None if
        fleet discovery was skipped.
    """

    requeue_after: datetime.timedelta | None = None
    rotated: bool = False
    fleet_members: int | None = None


class Reconciler:
    """Drives the trust secret and all its consumers to a consistent state.

    Passes for the same request must not run concurrently; the trigger
    source serializes them.

    Parameters
    ----------
    store:
        Resource store for every resource the pass touches.
    config:
        Reconciler settings; defaults apply when omitted.
    fleet_resolver:
        Identifies sibling processes; defaults to :class:`PodFleetResolver`.
    authority_factory:
        Produces a fresh CA on rotation.
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        store: ResourceStore,
        config: TLSConfiguration | None = None,
        fleet_resolver: FleetResolver | None = None,
        authority_factory: AuthorityFactory = CertificateAuthority.generate_ca,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._config = config if config is not None else TLSConfiguration()
        self._authority_factory = authority_factory
        self._clock = clock
        self._fleet_resolver = (
            fleet_resolver
            if fleet_resolver is not None
            else PodFleetResolver(store, namespace=self._config.pod_namespace)
        )
        self._propagation = PropagationCoordinator(store, self._config)
        self._notifier = FleetNotifier(
            store,
            annotation=self._config.fleet_annotation,
            fingerprint_annotation=self._config.fingerprint_annotation,
            retry_policy=self._config.fleet_retry,
            clock=clock,
        )

    @property
    def config(self) -> TLSConfiguration:
        return self._config

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def reconcile(
        self,
        request: ReconcileRequest,
        cancel: threading.Event | None = None,
    ) -> ReconcileResult:
        """Run one reconciliation pass for *request*.

        Parameters
        ----------
        request:
            Identifies the trust secret.
        cancel:
            Enclosing cancellation scope; setting it aborts the pass.

        Returns
        -------
        ReconcileResult
            Whether material rotated and when to run again.

        Raises
        ------
        TrustReconcilerError
            Any failure of the pass; the trigger source retries with backoff.
        """
        if cancel is not None and cancel.is_set():
            raise ReconcileCancelled(f"pass for {request} cancelled before start")

        config = self._config
        now = self._clock()
        trust_store = TrustStore(self._store, request.namespace, request.name, config.conflict_backoff)
        result = ReconcileResult()

        material = trust_store.read()
        if should_rotate(material, config.generate_certificates, config.expiration_threshold, now):
            material = regenerate(
                config.service_dns_name,
                config.certificate_validity,
                authority_factory=self._authority_factory,
                now=now,
            )
            trust_store.persist(material, cancel)
            result.rotated = True

        if material is None or not material.ca_certificate:
            raise MissingCABundleError(CA_CERT_KEY, request.name)
        ca_bundle = material.ca_certificate

        members = self._discover_fleet()

        logger.info("Updating caBundle in webhooks and crd for %s", request)
        with FanOut(parent=cancel) as group:
            self._propagation.submit(group, ca_bundle)
            if members is not None:
                logger.info("Updating %d fleet member(s) for %s", len(members), request)
                self._notifier.submit(group, members, material)
            group.wait()

        result.fleet_members = None if members is None else len(members)

        if config.generate_certificates:
            certificate = load_certificate(material.certificate)
            result.requeue_after = compute_requeue_after(
                certificate,
                config.reconciliation_lookahead,
                now=self._clock(),
                expiration_threshold=config.expiration_threshold,
                minimum=config.minimum_requeue,
            )
            logger.info(
                "Reconciliation of %s completed, processing back in %s",
                request,
                result.requeue_after,
            )
        else:
            logger.info("Reconciliation of %s completed", request)
        return result

    def handle(
        self,
        request: ReconcileRequest,
        cancel: threading.Event | None = None,
    ) -> tuple[datetime.timedelta | None, Exception | None]:
        """Run :meth:`reconcile` and report ``(requeue_after, error)``.

        For trigger sources that expect a result pair instead of exceptions.
        Every failure of the pass is returned, including errors raised by a
        custom store or resolver outside the :class:`TrustReconcilerError`
        hierarchy; none of them escapes to the caller.
        """
        try:
            result = self.reconcile(request, cancel)
        except TrustReconcilerError as exc:
            logger.error("Reconciliation of %s failed: %s", request, exc)
            return None, exc
        except Exception as exc:
            logger.exception("Reconciliation of %s failed unexpectedly", request)
            return None, exc
        return result.requeue_after, None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _discover_fleet(self) -> list[FleetMember] | None:
        try:
            return self._notifier.discover(self._fleet_resolver)
        except DiscoveryError as exc:
            if self._config.fleet_discovery_required:
                logger.error("Cannot discover fleet members: %s", exc)
                raise
            logger.warning("Skipping fleet notification: %s", exc)
            return None
