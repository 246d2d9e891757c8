"""Tests for trust_reconciler.rotation — should_rotate and regenerate."""
from __future__ import annotations

import datetime
from unittest.mock import MagicMock

import pytest
from conftest import issue_material

from trust_reconciler.certificates import (
    CertificateAuthority,
    TrustMaterial,
    load_certificate,
    load_certificate_and_key,
    validate_certificate,
)
from trust_reconciler.errors import GenerationError
from trust_reconciler.rotation import regenerate, should_rotate

THRESHOLD = datetime.timedelta(days=3)
DNS_NAME = "trust-webhook-service.trust-system.svc"


# ---------------------------------------------------------------------------
# should_rotate
# ---------------------------------------------------------------------------


class TestShouldRotate:
    def test_disabled_never_rotates_absent(self) -> None:
        assert should_rotate(None, auto_generate=False, expiration_threshold=THRESHOLD) is False

    def test_disabled_never_rotates_expiring(self, ca: CertificateAuthority) -> None:
        material = issue_material(ca, validity=datetime.timedelta(days=1))
        assert should_rotate(material, auto_generate=False, expiration_threshold=THRESHOLD) is False

    def test_absent_material_rotates(self) -> None:
        assert should_rotate(None, auto_generate=True, expiration_threshold=THRESHOLD) is True

    def test_missing_ca_field_rotates(self, ca: CertificateAuthority) -> None:
        valid = issue_material(ca)
        material = TrustMaterial(certificate=valid.certificate, private_key=valid.private_key)
        assert should_rotate(material, True, THRESHOLD) is True

    def test_corrupt_certificate_rotates(self, ca: CertificateAuthority) -> None:
        material = TrustMaterial(b"garbage", b"garbage", ca.ca_cert_pem())
        assert should_rotate(material, True, THRESHOLD) is True

    def test_missing_leaf_rotates(self, ca: CertificateAuthority) -> None:
        material = TrustMaterial(ca_certificate=ca.ca_cert_pem())
        assert should_rotate(material, True, THRESHOLD) is True

    def test_expiring_within_threshold_rotates(self, ca: CertificateAuthority) -> None:
        material = issue_material(ca, validity=datetime.timedelta(days=2))
        assert should_rotate(material, True, THRESHOLD) is True

    def test_mismatched_key_rotates(self, ca: CertificateAuthority) -> None:
        first = issue_material(ca)
        second = issue_material(ca)
        material = TrustMaterial(first.certificate, second.private_key, first.ca_certificate)
        assert should_rotate(material, True, THRESHOLD) is True

    def test_valid_material_kept(self, ca: CertificateAuthority) -> None:
        material = issue_material(ca, validity=datetime.timedelta(days=10))
        assert should_rotate(material, True, THRESHOLD) is False

    def test_reference_time_is_honoured(self, ca: CertificateAuthority) -> None:
        material = issue_material(ca, validity=datetime.timedelta(days=10))
        later = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(days=8)
        assert should_rotate(material, True, THRESHOLD, now=later) is True


# ---------------------------------------------------------------------------
# regenerate
# ---------------------------------------------------------------------------


class TestRegenerate:
    def test_material_is_complete_and_consistent(self) -> None:
        material = regenerate(DNS_NAME, datetime.timedelta(days=180))
        assert material.is_complete()
        cert, key = load_certificate_and_key(material.certificate, material.private_key)
        validate_certificate(cert, key, THRESHOLD)
        assert cert.issuer == load_certificate(material.ca_certificate).subject

    def test_validity_window(self) -> None:
        now = datetime.datetime.now(datetime.timezone.utc)
        material = regenerate(DNS_NAME, datetime.timedelta(days=180), now=now)
        not_after = load_certificate(material.certificate).not_valid_after_utc
        assert abs(not_after - (now + datetime.timedelta(days=180))) < datetime.timedelta(seconds=2)

    def test_uses_authority_factory(self, ca: CertificateAuthority) -> None:
        material = regenerate(DNS_NAME, datetime.timedelta(days=1), authority_factory=lambda **_: ca)
        assert material.ca_certificate == ca.ca_cert_pem()

    def test_generation_error_propagates(self) -> None:
        authority = MagicMock()
        authority.issue_certificate.side_effect = GenerationError("no entropy")
        with pytest.raises(GenerationError, match="no entropy"):
            regenerate(DNS_NAME, datetime.timedelta(days=1), authority_factory=lambda **_: authority)

    def test_library_error_wrapped(self) -> None:
        def broken_factory(**_: object) -> CertificateAuthority:
            raise ValueError("unsupported key size")

        with pytest.raises(GenerationError, match="unsupported key size"):
            regenerate(DNS_NAME, datetime.timedelta(days=1), authority_factory=broken_factory)

    def test_ca_outlives_long_serving_certificate(self) -> None:
        material = regenerate(DNS_NAME, datetime.timedelta(days=730))
        leaf_not_after = load_certificate(material.certificate).not_valid_after_utc
        ca_not_after = load_certificate(material.ca_certificate).not_valid_after_utc
        assert ca_not_after >= leaf_not_after

    def test_factory_receives_covering_validity(self) -> None:
        requested: list[int] = []

        def factory(validity_days: int) -> CertificateAuthority:
            requested.append(validity_days)
            return CertificateAuthority.generate_ca(validity_days=validity_days)

        regenerate(DNS_NAME, datetime.timedelta(days=1), authority_factory=factory)
        regenerate(DNS_NAME, datetime.timedelta(days=400, hours=1), authority_factory=factory)
        assert requested[0] >= 365
        assert requested[1] >= 402

    def test_short_lived_ca_rejected(self) -> None:
        short_lived = CertificateAuthority.generate_ca(validity_days=1)
        with pytest.raises(GenerationError, match="before the serving certificate"):
            regenerate(DNS_NAME, datetime.timedelta(days=30), authority_factory=lambda **_: short_lived)
