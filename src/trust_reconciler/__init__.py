"""trust-reconciler: certificate lifecycle reconciliation for webhook trust roots.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Quick start
-----------
::

    from trust_reconciler import (
        InMemoryResourceStore, Reconciler, TLSConfiguration, WatchFilter,
    )

    config = TLSConfiguration(namespace="system")
    reconciler = Reconciler(InMemoryResourceStore(), config=config)
    result = reconciler.reconcile(WatchFilter(config).trust_root())
    print(result.requeue_after)
"""
from __future__ import annotations

__version__: str = "0.1.0"

from trust_reconciler.certificates import CertificateAuthority, TrustMaterial
from trust_reconciler.concurrency import FanOut
from trust_reconciler.config import TLSConfiguration, load_configuration
from trust_reconciler.errors import (
    AlreadyExistsError,
    CertificateParseError,
    CertificateValidationError,
    ConflictError,
    DiscoveryError,
    GenerationError,
    MissingCABundleError,
    NotFoundError,
    PropagationError,
    ReconcileCancelled,
    RetryExhaustedError,
    StoreError,
    TrustReconcilerError,
)
from trust_reconciler.fleet import FleetMember, FleetNotifier, FleetResolver, PodFleetResolver
from trust_reconciler.propagation import PropagationCoordinator
from trust_reconciler.reconciler import ReconcileResult, Reconciler
from trust_reconciler.retry import DEFAULT_BACKOFF, DEFAULT_RETRY, RetryPolicy, retry_on_conflict
from trust_reconciler.rotation import regenerate, should_rotate
from trust_reconciler.schedule import compute_requeue_after
from trust_reconciler.store import (
    FilesystemResourceStore,
    InMemoryResourceStore,
    OperationResult,
    ResourceStore,
)
from trust_reconciler.triggers import ReconcileRequest, WatchFilter
from trust_reconciler.truststore import TrustStore

__all__ = [
    "__version__",
    # certificates
    "CertificateAuthority",
    "TrustMaterial",
    "TrustStore",
    "regenerate",
    "should_rotate",
    # reconciliation
    "FanOut",
    "PropagationCoordinator",
    "ReconcileRequest",
    "ReconcileResult",
    "Reconciler",
    "WatchFilter",
    "compute_requeue_after",
    # fleet
    "FleetMember",
    "FleetNotifier",
    "FleetResolver",
    "PodFleetResolver",
    # retry
    "DEFAULT_BACKOFF",
    "DEFAULT_RETRY",
    "RetryPolicy",
    "retry_on_conflict",
    # store
    "FilesystemResourceStore",
    "InMemoryResourceStore",
    "OperationResult",
    "ResourceStore",
    # configuration
    "TLSConfiguration",
    "load_configuration",
    # errors
    "AlreadyExistsError",
    "CertificateParseError",
    "CertificateValidationError",
    "ConflictError",
    "DiscoveryError",
    "GenerationError",
    "MissingCABundleError",
    "NotFoundError",
    "PropagationError",
    "ReconcileCancelled",
    "RetryExhaustedError",
    "StoreError",
    "TrustReconcilerError",
]
