"""Self-signed Certificate Authority for the webhook trust root.

Generates the root CA whose certificate is distributed to every consumer
as the CA bundle, and issues the serving (leaf) certificate for the
internal webhook service.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from trust_reconciler.errors import GenerationError


@dataclass(frozen=True)
class IssuedCertificate:
    """A leaf certificate and its private key, PEM-encoded.

    Parameters
    ----------
    cert_pem:
        PEM-encoded X.509 certificate bytes.
    key_pem:
        PEM-encoded RSA private key bytes.
    not_after:
        Certificate validity end.
    """

    cert_pem: bytes
    key_pem: bytes
    not_after: datetime.datetime


def _private_key_pem(key: RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass
class CertificateAuthority:
    """Self-signed CA issuing serving certificates for internal services.

    Parameters
    ----------
    ca_cert:
        The CA's own X.509 certificate.
    ca_key:
        The CA's RSA private key.
    """

    ca_cert: x509.Certificate
    ca_key: RSAPrivateKey

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def generate_ca(
        cls,
        common_name: str = "trust-reconciler",
        organization: str = "trust-reconciler",
        validity_days: int = 365,
        key_size: int = 2048,
    ) -> "CertificateAuthority":
        """Generate a new self-signed Certificate Authority.

        Parameters
        ----------
        common_name:
            Common name for the CA certificate subject.
        organization:
            Organization name for the CA certificate subject.
        validity_days:
            How long the CA certificate should be valid.
        key_size:
            RSA key size in bits. Must be at least 2048.

        Returns
        -------
        CertificateAuthority
            Fully initialized CA instance.

        Raises
        ------
        GenerationError
            If the parameters are out of range.
        """
        if key_size < 2048:
            raise GenerationError(f"key_size must be at least 2048 bits, got {key_size}")
        if validity_days < 1:
            raise GenerationError(f"validity_days must be positive, got {validity_days}")

        ca_key: RSAPrivateKey = rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size,
        )

        now = datetime.datetime.now(datetime.timezone.utc)

        subject = issuer = x509.Name(
            [
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, organization),
            ]
        )

        ca_cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(ca_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + datetime.timedelta(days=validity_days))
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()),
                critical=False,
            )
            .sign(ca_key, hashes.SHA256())
        )

        return cls(ca_cert=ca_cert, ca_key=ca_key)

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_certificate(
        self,
        dns_names: list[str],
        not_after: datetime.datetime,
        key_size: int = 2048,
    ) -> IssuedCertificate:
        """Issue a serving certificate for *dns_names* valid until *not_after*.

        The first DNS name becomes the subject common name; all of them are
        written to the Subject Alternative Name extension.

        Raises
        ------
        GenerationError
            If no DNS name is given or *not_after* is not in the future.
        """
        if not dns_names:
            raise GenerationError("at least one DNS name is required")

        now = datetime.datetime.now(datetime.timezone.utc)
        if not_after <= now:
            raise GenerationError(f"not_after {not_after.isoformat()} is not in the future")

        leaf_key: RSAPrivateKey = rsa.generate_private_key(
            public_exponent=65537,
            key_size=key_size,
        )

        cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, dns_names[0])]))
            .issuer_name(self.ca_cert.subject)
            .public_key(leaf_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(not_after)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
                critical=False,
            )
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=True,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .sign(self.ca_key, hashes.SHA256())
        )

        return IssuedCertificate(
            cert_pem=cert.public_bytes(serialization.Encoding.PEM),
            key_pem=_private_key_pem(leaf_key),
            not_after=cert.not_valid_after_utc,
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def ca_cert_pem(self) -> bytes:
        """Return PEM-encoded CA certificate bytes."""
        return self.ca_cert.public_bytes(serialization.Encoding.PEM)

    def ca_key_pem(self) -> bytes:
        """Return PEM-encoded CA private key bytes (unencrypted)."""
        return _private_key_pem(self.ca_key)
