"""Propagation coordinator — push the CA bundle to every consumer resource.

Three consumers reference the trust root:

* the validating admission configuration,
* the mutating admission configuration,
* the conversion block of the managed CustomResourceDefinition.

Each update is an idempotent read-modify-write retried on conflict. The
updates are independent: when one fails, the others may already be
committed, and the next pass converges whatever is left.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from trust_reconciler.concurrency import FanOut
from trust_reconciler.config import TLSConfiguration
from trust_reconciler.encoding import encode_bytes
from trust_reconciler.errors import PropagationError, ReconcileCancelled, TrustReconcilerError
from trust_reconciler.retry import retry_on_conflict
from trust_reconciler.store.base import (
    CUSTOM_RESOURCE_DEFINITION,
    MUTATING_WEBHOOK_CONFIGURATION,
    VALIDATING_WEBHOOK_CONFIGURATION,
    Resource,
    ResourceStore,
)

logger = logging.getLogger(__name__)

CONVERSION_STRATEGY_WEBHOOK = "Webhook"


def inject_ca_bundle(webhook_configuration: Resource, encoded_bundle: str) -> bool:
    """Set *encoded_bundle* on every webhook that targets an in-cluster service.

    Webhooks addressed by URL are left untouched.

    Returns
    -------
    bool
        True if at least one webhook entry changed.
    """
    changed = False
    for webhook in webhook_configuration.get("webhooks") or []:
        client_config = webhook.get("clientConfig")
        if not client_config or client_config.get("service") is None:
            continue
        if client_config.get("caBundle") != encoded_bundle:
            client_config["caBundle"] = encoded_bundle
            changed = True
    return changed


class PropagationCoordinator:
    """Keeps admission configurations and the CRD on the current CA bundle.

    Parameters
    ----------
    store:
        Resource store holding the consumer resources.
    config:
        Names of the consumers and the conversion endpoint.
    """

    def __init__(self, store: ResourceStore, config: TLSConfiguration) -> None:
        self._store = store
        self._config = config

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def submit(self, group: FanOut, ca_bundle: bytes) -> None:
        """Schedule the three consumer updates on *group*."""
        for label, update in self._updates():
            group.submit(label, update, ca_bundle, group.cancel)

    def propagate(self, ca_bundle: bytes, parent: threading.Event | None = None) -> None:
        """Run the three consumer updates concurrently and wait for them.

        Raises
        ------
        PropagationError
            If any consumer could not be updated.
        """
        with FanOut(parent=parent) as group:
            self.submit(group, ca_bundle)
            group.wait()

    def _updates(self) -> list[tuple[str, Callable[[bytes, threading.Event | None], bool]]]:
        return [
            ("validating-webhook-configuration", self.update_validating_webhook_configuration),
            ("mutating-webhook-configuration", self.update_mutating_webhook_configuration),
            ("custom-resource-definition", self.update_custom_resource_definition),
        ]

    # ------------------------------------------------------------------
    # Individual consumers
    # ------------------------------------------------------------------

    def update_validating_webhook_configuration(
        self, ca_bundle: bytes, cancel: threading.Event | None = None
    ) -> bool:
        """Update the validating admission configuration. Returns True if written."""
        return self._update_webhook_configuration(
            VALIDATING_WEBHOOK_CONFIGURATION,
            self._config.validating_webhook_configuration_name,
            ca_bundle,
            cancel,
        )

    def update_mutating_webhook_configuration(
        self, ca_bundle: bytes, cancel: threading.Event | None = None
    ) -> bool:
        """Update the mutating admission configuration. Returns True if written."""
        return self._update_webhook_configuration(
            MUTATING_WEBHOOK_CONFIGURATION,
            self._config.mutating_webhook_configuration_name,
            ca_bundle,
            cancel,
        )

    def update_custom_resource_definition(
        self, ca_bundle: bytes, cancel: threading.Event | None = None
    ) -> bool:
        """Point the CRD's conversion webhook at the internal service.

        CRDs shipped by package managers cannot template the namespace or
        CA, so they are installed with no conversion and completed here.
        Returns True if written.
        """
        desired = self.desired_conversion(ca_bundle)

        def mutate(crd: Resource) -> bool:
            spec = crd.setdefault("spec", {})
            if spec.get("conversion") == desired:
                return False
            spec["conversion"] = desired
            return True

        return self._read_modify_write(
            CUSTOM_RESOURCE_DEFINITION, self._config.crd_name, mutate, cancel
        )

    def desired_conversion(self, ca_bundle: bytes) -> dict[str, Any]:
        """Return the conversion block the CRD must carry for *ca_bundle*."""
        return {
            "strategy": CONVERSION_STRATEGY_WEBHOOK,
            "webhook": {
                "clientConfig": {
                    "service": {
                        "namespace": self._config.namespace,
                        "name": self._config.webhook_service_name,
                        "path": self._config.conversion_path,
                        "port": self._config.conversion_port,
                    },
                    "caBundle": encode_bytes(ca_bundle),
                },
                "conversionReviewVersions": list(self._config.conversion_review_versions),
            },
        }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _update_webhook_configuration(
        self,
        kind: str,
        name: str,
        ca_bundle: bytes,
        cancel: threading.Event | None,
    ) -> bool:
        encoded = encode_bytes(ca_bundle)
        return self._read_modify_write(
            kind, name, lambda resource: inject_ca_bundle(resource, encoded), cancel
        )

    def _read_modify_write(
        self,
        kind: str,
        name: str,
        mutate: Callable[[Resource], bool],
        cancel: threading.Event | None,
    ) -> bool:
        def attempt() -> bool:
            resource = self._store.get(kind, name)
            if not mutate(resource):
                return False
            self._store.update(resource)
            return True

        try:
            changed = retry_on_conflict(self._config.conflict_backoff, attempt, cancel)
        except ReconcileCancelled:
            raise
        except TrustReconcilerError as exc:
            logger.error("Cannot update %s %s: %s", kind, name, exc)
            raise PropagationError(kind, name, exc) from exc

        if changed:
            logger.info("Updated caBundle in %s %s", kind, name)
        else:
            logger.debug("%s %s already carries the current caBundle", kind, name)
        return changed
