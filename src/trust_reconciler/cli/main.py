"""CLI entry point for trust-reconciler.

Invoked as::

    trust-reconciler [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m trust_reconciler.cli.main

Commands
--------
version     Show version information
reconcile   Run one reconciliation pass against a state directory
status      Show the trust secret and whether each consumer is in sync
"""
from __future__ import annotations

import copy
import datetime
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from trust_reconciler import __version__
from trust_reconciler.config import TLSConfiguration

console = Console()

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Certificate lifecycle reconciliation for webhook trust roots"""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    console.print(f"[bold]trust-reconciler[/bold] v{__version__}")


# ------------------------------------------------------------------
# reconcile
# ------------------------------------------------------------------


@cli.command(name="reconcile")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Directory holding the resource documents.",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file overriding the default configuration.",
)
@click.option(
    "--hostname",
    default=None,
    help="Pod name of this instance (defaults to the host name).",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
def reconcile_command(
    state_dir: Path,
    config_file: Path | None,
    hostname: str | None,
    log_level: str,
) -> None:
    """Run one reconciliation pass for the configured trust secret."""
    from trust_reconciler.errors import TrustReconcilerError
    from trust_reconciler.fleet import PodFleetResolver
    from trust_reconciler.reconciler import Reconciler
    from trust_reconciler.store import FilesystemResourceStore
    from trust_reconciler.triggers import WatchFilter

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = _load_config(config_file)
    store = FilesystemResourceStore(base_dir=state_dir)
    resolver = PodFleetResolver(store, namespace=config.pod_namespace, hostname=hostname)
    reconciler = Reconciler(store, config=config, fleet_resolver=resolver)
    request = WatchFilter(config).trust_root()

    try:
        result = reconciler.reconcile(request)
    except TrustReconcilerError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    console.print(f"[green]Reconciled[/green] [bold]{request}[/bold]")
    console.print(f"  Rotated:       {'yes' if result.rotated else 'no'}")
    if result.fleet_members is None:
        console.print("  Fleet:         skipped (no identifiable leader pod)")
    else:
        console.print(f"  Fleet:         {result.fleet_members} member(s)")
    if result.requeue_after is None:
        console.print("  Next pass:     on change only")
    else:
        console.print(f"  Next pass:     in {result.requeue_after}")


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------


@cli.command(name="status")
@click.option(
    "--state-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Directory holding the resource documents.",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file overriding the default configuration.",
)
def status_command(state_dir: Path, config_file: Path | None) -> None:
    """Show the trust secret and whether each consumer carries its CA."""
    from trust_reconciler.certificates import bundle_fingerprint, load_certificate
    from trust_reconciler.encoding import encode_bytes
    from trust_reconciler.errors import CertificateParseError, NotFoundError, StoreError
    from trust_reconciler.propagation import PropagationCoordinator, inject_ca_bundle
    from trust_reconciler.store import (
        CUSTOM_RESOURCE_DEFINITION,
        MUTATING_WEBHOOK_CONFIGURATION,
        VALIDATING_WEBHOOK_CONFIGURATION,
        FilesystemResourceStore,
    )
    from trust_reconciler.truststore import TrustStore

    config = _load_config(config_file)
    store = FilesystemResourceStore(base_dir=state_dir)
    try:
        material = TrustStore(store, config.namespace, config.tls_secret_name).read()
    except StoreError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if material is None or not material.ca_certificate:
        console.print(
            f"[red]Error:[/red] secret {config.namespace}/{config.tls_secret_name} "
            "holds no CA certificate."
        )
        sys.exit(1)

    ca_bundle = material.ca_certificate
    table = Table(title=f"Trust root {config.namespace}/{config.tls_secret_name}")
    table.add_column("Resource", style="bold")
    table.add_column("Name")
    table.add_column("State")

    try:
        certificate = load_certificate(material.certificate)
        remaining = certificate.not_valid_after_utc - datetime.datetime.now(datetime.timezone.utc)
        table.add_row(
            "Secret",
            config.tls_secret_name,
            f"{certificate.subject.rfc4514_string()}, "
            f"expires {certificate.not_valid_after_utc.isoformat()} ({remaining.days} days)",
        )
    except CertificateParseError as exc:
        table.add_row("Secret", config.tls_secret_name, f"[red]{exc}[/red]")
    table.add_row("CA bundle", "sha256", bundle_fingerprint(ca_bundle)[:16])

    encoded = encode_bytes(ca_bundle)
    for kind, name in (
        (VALIDATING_WEBHOOK_CONFIGURATION, config.validating_webhook_configuration_name),
        (MUTATING_WEBHOOK_CONFIGURATION, config.mutating_webhook_configuration_name),
    ):
        try:
            resource = store.get(kind, name)
        except NotFoundError:
            table.add_row(kind, name, "[red]missing[/red]")
            continue
        stale = inject_ca_bundle(copy.deepcopy(resource), encoded)
        table.add_row(kind, name, "[yellow]stale[/yellow]" if stale else "[green]in sync[/green]")

    try:
        crd = store.get(CUSTOM_RESOURCE_DEFINITION, config.crd_name)
    except NotFoundError:
        table.add_row(CUSTOM_RESOURCE_DEFINITION, config.crd_name, "[red]missing[/red]")
    else:
        desired = PropagationCoordinator(store, config).desired_conversion(ca_bundle)
        in_sync = (crd.get("spec") or {}).get("conversion") == desired
        table.add_row(
            CUSTOM_RESOURCE_DEFINITION,
            config.crd_name,
            "[green]in sync[/green]" if in_sync else "[yellow]stale[/yellow]",
        )

    console.print(table)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _load_config(config_file: Path | None) -> TLSConfiguration:
    from pydantic import ValidationError

    from trust_reconciler.config import load_configuration

    try:
        return load_configuration(config_file)
    except ValidationError as exc:
        console.print(f"[red]Error:[/red] invalid configuration: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
