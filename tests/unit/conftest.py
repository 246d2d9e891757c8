"""Shared fixtures: a CA, a fast-retry configuration and a seeded store."""
from __future__ import annotations

import datetime

import pytest

from trust_reconciler.certificates.ca import CertificateAuthority
from trust_reconciler.certificates.material import TrustMaterial
from trust_reconciler.config import TLSConfiguration
from trust_reconciler.encoding import encode_bytes
from trust_reconciler.retry import RetryPolicy
from trust_reconciler.store import (
    CUSTOM_RESOURCE_DEFINITION,
    MUTATING_WEBHOOK_CONFIGURATION,
    POD,
    SECRET,
    VALIDATING_WEBHOOK_CONFIGURATION,
    InMemoryResourceStore,
    ResourceStore,
)

NAMESPACE = "trust-system"
EXTERNAL_BUNDLE = encode_bytes(b"-----BEGIN CERTIFICATE-----\nexternal\n-----END CERTIFICATE-----\n")
FLEET_LABELS = {"app.kubernetes.io/name": "trust-reconciler"}


def issue_material(
    ca: CertificateAuthority,
    dns_name: str = "trust-webhook-service.trust-system.svc",
    validity: datetime.timedelta = datetime.timedelta(days=180),
) -> TrustMaterial:
    """Return material signed by *ca* whose leaf expires after *validity*."""
    issued = ca.issue_certificate(
        [dns_name], datetime.datetime.now(datetime.timezone.utc) + validity
    )
    return TrustMaterial(
        certificate=issued.cert_pem,
        private_key=issued.key_pem,
        ca_certificate=ca.ca_cert_pem(),
    )


def seed_consumers(store: ResourceStore, config: TLSConfiguration) -> None:
    """Create both admission configurations, the CRD and a two-pod fleet."""
    for kind, name in (
        (VALIDATING_WEBHOOK_CONFIGURATION, config.validating_webhook_configuration_name),
        (MUTATING_WEBHOOK_CONFIGURATION, config.mutating_webhook_configuration_name),
    ):
        store.create(
            {
                "kind": kind,
                "metadata": {"name": name},
                "webhooks": [
                    {
                        "name": "tenants.trust.example.io",
                        "clientConfig": {
                            "service": {
                                "namespace": config.namespace,
                                "name": config.webhook_service_name,
                                "path": "/tenants",
                            }
                        },
                    },
                    {
                        "name": "external.example.com",
                        "clientConfig": {
                            "url": "https://external.example.com/admit",
                            "caBundle": EXTERNAL_BUNDLE,
                        },
                    },
                    {
                        "name": "namespaces.trust.example.io",
                        "clientConfig": {
                            "service": {
                                "namespace": config.namespace,
                                "name": config.webhook_service_name,
                                "path": "/namespaces",
                            }
                        },
                    },
                ],
            }
        )
    store.create(
        {
            "kind": CUSTOM_RESOURCE_DEFINITION,
            "metadata": {"name": config.crd_name},
            "spec": {"group": "trust.example.io", "conversion": {"strategy": "None"}},
        }
    )
    for pod_name in ("reconciler-0", "reconciler-1"):
        store.create(
            {
                "kind": POD,
                "metadata": {"name": pod_name, "namespace": NAMESPACE, "labels": dict(FLEET_LABELS)},
            }
        )
    store.create(
        {
            "kind": POD,
            "metadata": {"name": "unrelated", "namespace": NAMESPACE, "labels": {"app": "other"}},
        }
    )


def seed_secret(store: ResourceStore, config: TLSConfiguration, material: TrustMaterial | None) -> None:
    data = {} if material is None else {k: encode_bytes(v) for k, v in material.to_data().items()}
    store.create(
        {
            "kind": SECRET,
            "metadata": {
                "name": config.tls_secret_name,
                "namespace": config.namespace,
                "labels": {"app.kubernetes.io/managed-by": "helm"},
            },
            "type": "kubernetes.io/tls",
            "data": data,
        }
    )


@pytest.fixture(scope="session")
def ca() -> CertificateAuthority:
    return CertificateAuthority.generate_ca()


@pytest.fixture()
def config() -> TLSConfiguration:
    fast = RetryPolicy(steps=4, duration=0.0, factor=1.0, jitter=0.0)
    return TLSConfiguration(
        namespace=NAMESPACE,
        pod_namespace=NAMESPACE,
        conflict_backoff=fast,
        fleet_retry=fast,
    )


@pytest.fixture()
def store(config: TLSConfiguration) -> InMemoryResourceStore:
    store = InMemoryResourceStore()
    seed_consumers(store, config)
    return store
