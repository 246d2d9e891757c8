"""Certificate rotation — decide when to reissue and produce new material.

:func:`should_rotate` is a pure policy over the stored material.
:func:`regenerate` issues a fresh CA and serving certificate; it never
touches the store, so a failure cannot leave partial material behind.
"""
from __future__ import annotations

import datetime
import logging
from typing import Callable

from trust_reconciler.certificates.ca import CertificateAuthority
from trust_reconciler.certificates.material import TrustMaterial
from trust_reconciler.certificates.validation import (
    load_certificate_and_key,
    validate_certificate,
)
from trust_reconciler.errors import (
    CertificateParseError,
    CertificateValidationError,
    GenerationError,
)

logger = logging.getLogger(__name__)

# Called with ``validity_days`` covering the serving certificate.
AuthorityFactory = Callable[..., CertificateAuthority]

CA_MINIMUM_VALIDITY_DAYS = 365


def should_rotate(
    material: TrustMaterial | None,
    auto_generate: bool,
    expiration_threshold: datetime.timedelta,
    now: datetime.datetime | None = None,
) -> bool:
    """Return True if the trust material must be regenerated.

    Policy, in order:

    1. auto-generation disabled: never rotate;
    2. no CA certificate stored: rotate;
    3. certificate or key unparsable: rotate;
    4. key mismatch, not yet valid, or less than *expiration_threshold*
       remaining: rotate;
    5. otherwise keep the current material.
    """
    if not auto_generate:
        logger.info("Skipping TLS certificate generation as it is disabled")
        return False

    if material is None or not material.ca_certificate:
        logger.info("No CA certificate stored, generating a new one")
        return True

    try:
        certificate, key = load_certificate_and_key(material.certificate, material.private_key)
    except CertificateParseError as exc:
        logger.info("Stored certificate is unreadable, generating a new one: %s", exc)
        return True

    try:
        validate_certificate(certificate, key, expiration_threshold, now=now)
    except CertificateValidationError as exc:
        logger.error("Failed to validate certificate, generating a new one: %s", exc)
        return True

    logger.info("Skipping TLS certificate generation as it is still valid")
    return False


def regenerate(
    dns_name: str,
    validity: datetime.timedelta,
    authority_factory: AuthorityFactory = CertificateAuthority.generate_ca,
    now: datetime.datetime | None = None,
) -> TrustMaterial:
    """Issue a new CA and a serving certificate for *dns_name*.

    Parameters
    ----------
    dns_name:
        Subject alternative name of the serving certificate.
    validity:
        How long the serving certificate stays valid.
    authority_factory:
        Produces the new CA; receives ``validity_days``, long enough for
        the CA to outlive the serving certificate.
    now:
        Reference time for the validity window.

    Returns
    -------
    TrustMaterial
        Complete material: serving certificate, its key, and the CA.

    Raises
    ------
    GenerationError
        If the CA or the serving certificate cannot be issued, or the CA
        expires before the serving certificate.
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    leaf_days = -(-validity // datetime.timedelta(days=1))
    ca_validity_days = max(CA_MINIMUM_VALIDITY_DAYS, leaf_days + 1)

    logger.info("Generating new TLS certificate for %s", dns_name)
    try:
        authority = authority_factory(validity_days=ca_validity_days)
        issued = authority.issue_certificate([dns_name], now + validity)
        ca_pem = authority.ca_cert_pem()
    except GenerationError:
        logger.error("Cannot generate new TLS certificate for %s", dns_name)
        raise
    except (ValueError, TypeError) as exc:
        logger.error("Cannot generate new TLS certificate for %s", dns_name)
        raise GenerationError(f"cannot generate certificate for {dns_name}: {exc}") from exc

    ca_not_after = authority.ca_cert.not_valid_after_utc
    if ca_not_after < issued.not_after:
        raise GenerationError(
            f"CA expires at {ca_not_after.isoformat()}, before the serving "
            f"certificate at {issued.not_after.isoformat()}"
        )

    return TrustMaterial(
        certificate=issued.cert_pem,
        private_key=issued.key_pem,
        ca_certificate=ca_pem,
    )
