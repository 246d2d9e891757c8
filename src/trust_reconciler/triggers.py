"""Map resource change events to reconciliation requests.

The trust secret is reconciled when it changes itself, and also when any
of its consumers changes: an admission configuration reinstalled by a
package upgrade arrives without a CA bundle and must be repaired.
"""
from __future__ import annotations

from dataclasses import dataclass

from trust_reconciler.config import TLSConfiguration
from trust_reconciler.store.base import (
    CUSTOM_RESOURCE_DEFINITION,
    MUTATING_WEBHOOK_CONFIGURATION,
    SECRET,
    VALIDATING_WEBHOOK_CONFIGURATION,
)


@dataclass(frozen=True)
class ReconcileRequest:
    """Identity of the trust root to reconcile: the trust secret."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class WatchFilter:
    """Decides which change events enqueue the trust root.

    Parameters
    ----------
    config:
        Supplies the watched resource names.
    """

    def __init__(self, config: TLSConfiguration) -> None:
        self._config = config
        self._watched = {
            VALIDATING_WEBHOOK_CONFIGURATION: config.validating_webhook_configuration_name,
            MUTATING_WEBHOOK_CONFIGURATION: config.mutating_webhook_configuration_name,
            CUSTOM_RESOURCE_DEFINITION: config.crd_name,
        }

    def watched_kinds(self) -> list[str]:
        """Return the resource kinds a trigger source must subscribe to."""
        return [SECRET, *self._watched]

    def trust_root(self) -> ReconcileRequest:
        return ReconcileRequest(namespace=self._config.namespace, name=self._config.tls_secret_name)

    def request_for(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
    ) -> ReconcileRequest | None:
        """Return the request a change to ``kind/name`` enqueues, if any."""
        if kind == SECRET:
            if name == self._config.tls_secret_name and namespace == self._config.namespace:
                return self.trust_root()
            return None
        if self._watched.get(kind) == name:
            return self.trust_root()
        return None
