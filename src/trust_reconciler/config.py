"""Reconciler configuration.

TLSConfiguration gathers every name, duration and policy the reconciler
needs. Defaults reproduce a standard single-namespace install; a JSON file
can override any subset of fields.
"""
from __future__ import annotations

import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from trust_reconciler.retry import DEFAULT_BACKOFF, DEFAULT_RETRY, RetryPolicy


class TLSConfiguration(BaseModel):
    """Settings for one trust root and its consumers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = "trust-system"
    tls_secret_name: str = "trust-webhook-tls"
    generate_certificates: bool = True

    validating_webhook_configuration_name: str = "trust-validating-webhook-configuration"
    mutating_webhook_configuration_name: str = "trust-mutating-webhook-configuration"
    crd_name: str = "tenants.trust.example.io"

    webhook_service_name: str = "trust-webhook-service"
    conversion_path: str = "/convert"
    conversion_port: int = 443
    conversion_review_versions: list[str] = Field(
        default_factory=lambda: ["v1alpha1", "v1beta1"]
    )

    certificate_validity: datetime.timedelta = datetime.timedelta(days=180)
    expiration_threshold: datetime.timedelta = datetime.timedelta(days=3)
    reconciliation_lookahead: datetime.timedelta = datetime.timedelta(days=4)
    minimum_requeue: datetime.timedelta = datetime.timedelta(minutes=1)

    fleet_annotation: str = "trust-reconciler.io/updated"
    pod_namespace: str | None = None
    fleet_discovery_required: bool = False

    conflict_backoff: RetryPolicy = DEFAULT_BACKOFF
    fleet_retry: RetryPolicy = DEFAULT_RETRY

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @field_validator(
        "certificate_validity",
        "expiration_threshold",
        "reconciliation_lookahead",
        "minimum_requeue",
    )
    @classmethod
    def _positive_duration(cls, value: datetime.timedelta) -> datetime.timedelta:
        if value <= datetime.timedelta(0):
            raise ValueError("duration must be positive")
        return value

    @field_validator("conversion_port")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {value}")
        return value

    @field_validator("conversion_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("conversion_path must start with '/'")
        return value

    @field_validator("conversion_review_versions")
    @classmethod
    def _non_empty_versions(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one conversion review version is required")
        return value

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def service_dns_name(self) -> str:
        """DNS name the webhook leaf certificate is issued for."""
        return f"{self.webhook_service_name}.{self.namespace}.svc"

    @property
    def fingerprint_annotation(self) -> str:
        """Annotation recording which trust material a fleet member was told about."""
        return f"{self.fleet_annotation}-fingerprint"


def load_configuration(path: Path | None = None) -> TLSConfiguration:
    """Load a TLSConfiguration from a JSON file, or return the defaults.

    Durations use pydantic's encodings: ISO 8601 (``"P180D"``) or a number
    of seconds.

    Raises
    ------
    pydantic.ValidationError
        If the file content does not describe a valid configuration.
    """
    if path is None:
        return TLSConfiguration()
    return TLSConfiguration.model_validate_json(path.read_text(encoding="utf-8"))
