"""Certificate parsing and validation.

Parsing failures and validation failures are reported as distinct errors
because they drive rotation for different reasons (corruption versus
expiry or key mismatch).
"""
from __future__ import annotations

import datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from trust_reconciler.errors import CertificateParseError, CertificateValidationError


def load_certificate(cert_pem: bytes) -> x509.Certificate:
    """Parse a PEM certificate.

    Raises
    ------
    CertificateParseError
        If *cert_pem* is empty or not a PEM certificate.
    """
    if not cert_pem:
        raise CertificateParseError("certificate is empty")
    try:
        return x509.load_pem_x509_certificate(cert_pem)
    except ValueError as exc:
        raise CertificateParseError(f"cannot parse certificate: {exc}") from exc


def load_certificate_and_key(
    cert_pem: bytes,
    key_pem: bytes,
) -> tuple[x509.Certificate, PrivateKeyTypes]:
    """Parse a PEM certificate and its unencrypted PEM private key.

    Raises
    ------
    CertificateParseError
        If either input cannot be parsed.
    """
    certificate = load_certificate(cert_pem)
    if not key_pem:
        raise CertificateParseError("private key is empty")
    try:
        key = serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError) as exc:
        raise CertificateParseError(f"cannot parse private key: {exc}") from exc
    return certificate, key


def validate_certificate(
    certificate: x509.Certificate,
    key: PrivateKeyTypes,
    threshold: datetime.timedelta,
    now: datetime.datetime | None = None,
) -> None:
    """Check that *certificate* pairs with *key* and outlives *threshold*.

    Parameters
    ----------
    certificate:
        The parsed certificate.
    key:
        The parsed private key expected to match the certificate.
    threshold:
        Minimum validity that must remain after *now*.
    now:
        Reference time; defaults to the current UTC time.

    Raises
    ------
    CertificateValidationError
        If the key does not match, the certificate is not yet valid, or
        less than *threshold* remains before it expires.
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    if _public_key_der(key.public_key()) != _public_key_der(certificate.public_key()):
        raise CertificateValidationError("private key does not match certificate")

    not_before = certificate.not_valid_before_utc
    if now < not_before:
        raise CertificateValidationError(
            f"certificate is not yet valid (valid from {not_before.isoformat()})"
        )

    not_after = certificate.not_valid_after_utc
    if not_after - now < threshold:
        raise CertificateValidationError(
            f"certificate expires at {not_after.isoformat()}, "
            f"within the {threshold} expiration threshold"
        )


def _public_key_der(public_key: object) -> bytes:
    return public_key.public_bytes(  # type: ignore[attr-defined]
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
