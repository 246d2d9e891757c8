"""Certificate primitives for the trust root.

Provides CA generation, serving-certificate issuance, parsing/validation,
and the TrustMaterial value type persisted in the trust secret.
"""
from __future__ import annotations

from trust_reconciler.certificates.ca import CertificateAuthority, IssuedCertificate
from trust_reconciler.certificates.material import (
    CA_CERT_KEY,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    TrustMaterial,
    bundle_fingerprint,
    material_fingerprint,
)
from trust_reconciler.certificates.validation import (
    load_certificate,
    load_certificate_and_key,
    validate_certificate,
)

__all__ = [
    "CA_CERT_KEY",
    "CertificateAuthority",
    "IssuedCertificate",
    "TLS_CERT_KEY",
    "TLS_PRIVATE_KEY_KEY",
    "TrustMaterial",
    "bundle_fingerprint",
    "material_fingerprint",
    "load_certificate",
    "load_certificate_and_key",
    "validate_certificate",
]
