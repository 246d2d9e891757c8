"""The certificate, key and CA held by the trust secret."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass

# Field names inside the trust secret's data block.
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
CA_CERT_KEY = "ca.crt"


@dataclass(frozen=True)
class TrustMaterial:
    """Serving certificate, its key, and the CA that signed it, PEM-encoded.

    Any field may be empty when read from a partially populated secret;
    :meth:`is_complete` reports whether all three are present.
    """

    certificate: bytes = b""
    private_key: bytes = b""
    ca_certificate: bytes = b""

    def is_complete(self) -> bool:
        return bool(self.certificate and self.private_key and self.ca_certificate)

    def to_data(self) -> dict[str, bytes]:
        """Return the three fields keyed by their secret data names."""
        return {
            TLS_CERT_KEY: self.certificate,
            TLS_PRIVATE_KEY_KEY: self.private_key,
            CA_CERT_KEY: self.ca_certificate,
        }


def bundle_fingerprint(ca_bundle: bytes) -> str:
    """Return the SHA-256 hex digest identifying a CA bundle."""
    return hashlib.sha256(ca_bundle).hexdigest()


def material_fingerprint(material: TrustMaterial) -> str:
    """Return the SHA-256 hex digest over all three fields of *material*.

    Changes whenever the serving certificate, its key or the CA changes,
    including a leaf renewed under an unchanged CA.
    """
    digest = hashlib.sha256()
    for key, value in sorted(material.to_data().items()):
        digest.update(key.encode("ascii"))
        digest.update(len(value).to_bytes(8, "big"))
        digest.update(value)
    return digest.hexdigest()
