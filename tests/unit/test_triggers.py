"""Tests for trust_reconciler.triggers — WatchFilter."""
from __future__ import annotations

import pytest

from trust_reconciler.config import TLSConfiguration
from trust_reconciler.store import (
    CUSTOM_RESOURCE_DEFINITION,
    MUTATING_WEBHOOK_CONFIGURATION,
    POD,
    SECRET,
    VALIDATING_WEBHOOK_CONFIGURATION,
)
from trust_reconciler.triggers import ReconcileRequest, WatchFilter


@pytest.fixture()
def watch_filter(config: TLSConfiguration) -> WatchFilter:
    return WatchFilter(config)


class TestWatchFilter:
    def test_trust_root(self, watch_filter: WatchFilter, config: TLSConfiguration) -> None:
        assert watch_filter.trust_root() == ReconcileRequest(config.namespace, config.tls_secret_name)
        assert str(watch_filter.trust_root()) == f"{config.namespace}/{config.tls_secret_name}"

    def test_watched_kinds(self, watch_filter: WatchFilter) -> None:
        assert set(watch_filter.watched_kinds()) == {
            SECRET,
            VALIDATING_WEBHOOK_CONFIGURATION,
            MUTATING_WEBHOOK_CONFIGURATION,
            CUSTOM_RESOURCE_DEFINITION,
        }

    def test_trust_secret_enqueues(self, watch_filter: WatchFilter, config: TLSConfiguration) -> None:
        request = watch_filter.request_for(SECRET, config.tls_secret_name, config.namespace)
        assert request == watch_filter.trust_root()

    def test_other_secret_ignored(self, watch_filter: WatchFilter, config: TLSConfiguration) -> None:
        assert watch_filter.request_for(SECRET, "unrelated", config.namespace) is None
        assert watch_filter.request_for(SECRET, config.tls_secret_name, "elsewhere") is None

    @pytest.mark.parametrize(
        "kind, attribute",
        [
            (VALIDATING_WEBHOOK_CONFIGURATION, "validating_webhook_configuration_name"),
            (MUTATING_WEBHOOK_CONFIGURATION, "mutating_webhook_configuration_name"),
            (CUSTOM_RESOURCE_DEFINITION, "crd_name"),
        ],
    )
    def test_consumer_change_enqueues_trust_root(
        self, watch_filter: WatchFilter, config: TLSConfiguration, kind: str, attribute: str
    ) -> None:
        assert watch_filter.request_for(kind, getattr(config, attribute)) == watch_filter.trust_root()

    def test_unrelated_consumer_ignored(self, watch_filter: WatchFilter) -> None:
        assert watch_filter.request_for(VALIDATING_WEBHOOK_CONFIGURATION, "someone-else") is None

    def test_pods_not_watched(self, watch_filter: WatchFilter) -> None:
        assert watch_filter.request_for(POD, "reconciler-0", "trust-system") is None
