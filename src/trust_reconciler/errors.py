"""Error taxonomy for trust-reconciler.

Every error raised by a reconciliation pass derives from
:class:`TrustReconcilerError`. Errors are scoped to a single pass; none of
them is fatal to the process.
"""
from __future__ import annotations


class TrustReconcilerError(Exception):
    """Base class for all trust-reconciler errors."""


# ------------------------------------------------------------------
# Resource store
# ------------------------------------------------------------------


class NotFoundError(TrustReconcilerError, KeyError):
    """Raised when a referenced resource does not exist."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        location = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {location!r} not found")

    def __str__(self) -> str:
        return str(self.args[0])


class AlreadyExistsError(TrustReconcilerError):
    """Raised when creating a resource whose name is already taken."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        location = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {location!r} already exists")


class ConflictError(TrustReconcilerError):
    """Raised when an update is submitted against a stale resourceVersion."""

    def __init__(
        self,
        kind: str,
        name: str,
        expected_version: str | None,
        current_version: str | None,
    ) -> None:
        self.kind = kind
        self.name = name
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            f"{kind} {name!r} was modified concurrently "
            f"(submitted resourceVersion={expected_version!r}, "
            f"current={current_version!r})"
        )


class StoreError(TrustReconcilerError):
    """Raised when the storage backend fails to read or write a resource."""

    def __init__(self, operation: str, kind: str, name: str | None, cause: BaseException) -> None:
        self.operation = operation
        self.kind = kind
        self.name = name
        self.cause = cause
        target = f"{kind} {name!r}" if name else kind
        super().__init__(f"cannot {operation} {target}: {cause}")


class RetryExhaustedError(TrustReconcilerError):
    """Raised when optimistic-concurrency retries run out of budget."""

    def __init__(self, attempts: int, last_conflict: ConflictError) -> None:
        self.attempts = attempts
        self.last_conflict = last_conflict
        super().__init__(
            f"gave up after {attempts} conflicting attempt(s): {last_conflict}"
        )


# ------------------------------------------------------------------
# Certificates
# ------------------------------------------------------------------


class GenerationError(TrustReconcilerError):
    """Raised when CA or leaf certificate issuance fails."""


class CertificateParseError(TrustReconcilerError, ValueError):
    """Raised when stored certificate or key bytes cannot be parsed."""


class CertificateValidationError(TrustReconcilerError, ValueError):
    """Raised when a parsed certificate/key pair is expiring or mismatched."""


class MissingCABundleError(TrustReconcilerError):
    """Raised when the trust secret carries no CA certificate to propagate."""

    def __init__(self, field: str, secret_name: str) -> None:
        self.field = field
        self.secret_name = secret_name
        super().__init__(f"missing {field} field in {secret_name} secret")


# ------------------------------------------------------------------
# Pass-level
# ------------------------------------------------------------------


class PropagationError(TrustReconcilerError):
    """Raised when one consumer resource could not be brought up to date."""

    def __init__(self, kind: str, name: str, cause: BaseException) -> None:
        self.kind = kind
        self.name = name
        self.cause = cause
        super().__init__(f"cannot update {kind} {name!r}: {cause}")


class DiscoveryError(TrustReconcilerError):
    """Raised when the sibling fleet cannot be identified."""


class ReconcileCancelled(TrustReconcilerError):
    """Raised when the enclosing cancellation scope aborts a pass."""


__all__ = [
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
