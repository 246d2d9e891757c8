"""TrustStore — reads and writes the secret holding the trust material.

The secret carries three data fields (``tls.crt``, ``tls.key``,
``ca.crt``). A regeneration always writes all three in one update; other
data fields and all metadata on the secret are preserved.
"""
from __future__ import annotations

import logging
import threading

from trust_reconciler.certificates.material import (
    CA_CERT_KEY,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    TrustMaterial,
)
from trust_reconciler.encoding import decode_bytes, encode_bytes
from trust_reconciler.errors import AlreadyExistsError, ConflictError, NotFoundError
from trust_reconciler.retry import DEFAULT_BACKOFF, RetryPolicy, retry_on_conflict
from trust_reconciler.store.base import SECRET, OperationResult, Resource, ResourceStore

logger = logging.getLogger(__name__)

SECRET_TYPE_TLS = "kubernetes.io/tls"


class TrustStore:
    """Accessor for the single trust secret.

    Parameters
    ----------
    store:
        Resource store holding the secret.
    namespace:
        Namespace of the secret.
    name:
        Name of the secret.
    retry_policy:
        Conflict retry budget for :meth:`persist`.
    """

    def __init__(
        self,
        store: ResourceStore,
        namespace: str,
        name: str,
        retry_policy: RetryPolicy = DEFAULT_BACKOFF,
    ) -> None:
        self._store = store
        self._namespace = namespace
        self._name = name
        self._retry_policy = retry_policy

    @property
    def name(self) -> str:
        return self._name

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def read(self) -> TrustMaterial | None:
        """Return the stored material, or None if the secret does not exist.

        Fields that are absent or not valid base64 come back empty, which
        the rotation decision treats the same as missing material.
        """
        try:
            secret = self._store.get(SECRET, self._name, self._namespace)
        except NotFoundError:
            logger.info("Trust secret %s/%s does not exist yet", self._namespace, self._name)
            return None
        return material_from_secret(secret)

    def persist(
        self,
        material: TrustMaterial,
        cancel: threading.Event | None = None,
    ) -> Resource:
        """Write all three fields of *material* in a single update.

        Creates the secret if it does not exist. On conflict, including a
        concurrent creation of the secret, the latest version is re-read
        and the write retried.

        Returns
        -------
        Resource
            The committed secret.
        """
        encoded = {key: encode_bytes(value) for key, value in material.to_data().items()}

        def mutate(secret: Resource) -> None:
            secret.setdefault("type", SECRET_TYPE_TLS)
            data = secret.setdefault("data", {})
            data.update(encoded)

        def attempt() -> tuple[Resource, OperationResult]:
            try:
                return self._store.create_or_update(SECRET, self._name, self._namespace, mutate)
            except AlreadyExistsError as exc:
                # Created by another writer between our read and create.
                raise ConflictError(SECRET, self._name, None, None) from exc

        committed, operation = retry_on_conflict(self._retry_policy, attempt, cancel)
        logger.info(
            "Trust secret %s/%s %s",
            self._namespace,
            self._name,
            operation.value,
        )
        return committed


def material_from_secret(secret: Resource) -> TrustMaterial:
    """Decode the trust material carried by a secret document."""
    data = secret.get("data") or {}

    def field(key: str) -> bytes:
        try:
            return decode_bytes(data.get(key))
        except ValueError:
            logger.warning("Field %s of the trust secret is not valid base64", key)
            return b""

    return TrustMaterial(
        certificate=field(TLS_CERT_KEY),
        private_key=field(TLS_PRIVATE_KEY_KEY),
        ca_certificate=field(CA_CERT_KEY),
    )
