"""Operator CLI commands.

Commands:
    celine-client-operator reconcile [--name NAME]
    celine-client-operator run
    celine-client-operator delete NAME
    celine-client-operator status --realm REALM
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from celine.client_operator.audit import ReconcileAuditLogger, configure_audit_logging
from celine.client_operator.config import Settings, get_settings
from celine.client_operator.credentials import SecretProjector
from celine.client_operator.keycloak.client import (
    KeycloakAdminClient,
    KeycloakAuthError,
    KeycloakError,
)
from celine.client_operator.keycloak.settings import KeycloakSettings
from celine.client_operator.logs import configure_logging
from celine.client_operator.reconciler import MANAGED_DESCRIPTION, ClientReconciler
from celine.client_operator.runner import Operator, PassReport
from celine.client_operator.store import StoreError, YamlResourceStore, YamlSecretStore

logger = logging.getLogger(__name__)

BaseUrlOption = Annotated[
    Optional[str],
    typer.Option("--base-url", "-u", help="Keycloak base URL"),
]
AdminUserOption = Annotated[
    Optional[str],
    typer.Option("--admin-user", help="Keycloak admin username"),
]
AdminPasswordOption = Annotated[
    Optional[str],
    typer.Option("--admin-password", help="Keycloak admin password"),
]
ManifestsDirOption = Annotated[
    Optional[Path],
    typer.Option("--manifests-dir", "-m", help="Directory of KeycloakClient manifests"),
]
SecretsDirOption = Annotated[
    Optional[Path],
    typer.Option("--secrets-dir", "-s", help="Directory for credential files"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


def _configure_logging(settings: Settings, verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = "DEBUG" if verbose else settings.log_level
    configure_logging(level)
    configure_audit_logging(
        log_level=level,
        json_format=settings.log_json,
    )


def _build_keycloak_settings(
    base_url: str | None,
    admin_user: str | None,
    admin_password: str | None,
) -> KeycloakSettings:
    """Build settings from environment and CLI overrides."""
    settings = KeycloakSettings().with_overrides(
        base_url=base_url,
        admin_user=admin_user,
        admin_password=admin_password,
    )
    if not settings.has_admin_credentials:
        raise _fail(
            "Admin credentials required: set KEYCLOAK_USER and KEYCLOAK_PASSWORD "
            "or pass --admin-user and --admin-password"
        )
    return settings


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(1)


async def _with_operator(
    settings: Settings,
    keycloak_settings: KeycloakSettings,
    manifests_dir: Path,
    secrets_dir: Path,
    names: list[str] | None,
    forever: bool,
) -> PassReport | None:
    resources = YamlResourceStore(manifests_dir)
    secrets = YamlSecretStore(secrets_dir)

    async with KeycloakAdminClient(keycloak_settings) as keycloak:
        reconciler = ClientReconciler(
            keycloak=keycloak,
            resources=resources,
            projector=SecretProjector(secrets, keycloak_settings),
            audit=ReconcileAuditLogger(
                enabled=settings.audit_enabled,
                service_name=settings.service_name,
            ),
            requeue_after=settings.poll_interval_seconds,
        )
        operator = Operator(
            reconciler=reconciler,
            resources=resources,
            secrets=secrets,
            poll_interval=settings.poll_interval_seconds,
            concurrency=settings.concurrency,
        )
        if forever:
            await operator.run_forever()
            return None
        return await operator.run_once(names)


def reconcile(
    name: Annotated[
        Optional[list[str]],
        typer.Option("--name", "-n", help="Only reconcile these KeycloakClients"),
    ] = None,
    base_url: BaseUrlOption = None,
    admin_user: AdminUserOption = None,
    admin_password: AdminPasswordOption = None,
    manifests_dir: ManifestsDirOption = None,
    secrets_dir: SecretsDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Reconcile KeycloakClient manifests once.

    Creates missing Keycloak clients, corrects drifted ones, deletes the ones
    whose manifest is marked for deletion and writes credential files.
    Running it repeatedly is safe.

    Example:
        celine-client-operator reconcile -m clients/ --admin-user admin --admin-password admin
    """
    settings = get_settings()
    _configure_logging(settings, verbose)
    keycloak_settings = _build_keycloak_settings(base_url, admin_user, admin_password)
    manifests = manifests_dir or settings.manifests_dir

    typer.echo(f"Reconciling {manifests} against Keycloak: {keycloak_settings.base_url}")

    try:
        report = asyncio.run(
            _with_operator(
                settings,
                keycloak_settings,
                manifests,
                secrets_dir or settings.secrets_dir,
                names=name or None,
                forever=False,
            )
        )
    except StoreError as e:
        raise _fail(f"Storage error: {e}")

    typer.echo("\n" + report.summary())

    if not report.success:
        raise typer.Exit(1)


def run(
    base_url: BaseUrlOption = None,
    admin_user: AdminUserOption = None,
    admin_password: AdminPasswordOption = None,
    manifests_dir: ManifestsDirOption = None,
    secrets_dir: SecretsDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Reconcile continuously, re-checking every poll interval.

    Keycloak can be changed behind the operator's back, so every object is
    re-checked even when its manifest did not change.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)
    keycloak_settings = _build_keycloak_settings(base_url, admin_user, admin_password)
    manifests = manifests_dir or settings.manifests_dir

    typer.echo(
        f"Watching {manifests} (every {settings.poll_interval_seconds:g}s), "
        f"Keycloak: {keycloak_settings.base_url}"
    )

    try:
        asyncio.run(
            _with_operator(
                settings,
                keycloak_settings,
                manifests,
                secrets_dir or settings.secrets_dir,
                names=None,
                forever=True,
            )
        )
    except KeyboardInterrupt:
        typer.echo("Stopped")
    except StoreError as e:
        raise _fail(f"Storage error: {e}")


def delete(
    name: Annotated[str, typer.Argument(help="KeycloakClient to delete")],
    manifests_dir: ManifestsDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Mark a KeycloakClient for deletion.

    The Keycloak client is removed on the next reconcile, after which the
    manifest file itself is removed.
    """
    settings = get_settings()
    _configure_logging(settings, verbose)
    store = YamlResourceStore(manifests_dir or settings.manifests_dir)

    try:
        asyncio.run(store.mark_deleted(name))
    except StoreError as e:
        raise _fail(f"Storage error: {e}")

    typer.echo(f"Marked {name} for deletion")


def status(
    realm: Annotated[str, typer.Option("--realm", "-r", help="Realm to inspect")],
    base_url: BaseUrlOption = None,
    admin_user: AdminUserOption = None,
    admin_password: AdminPasswordOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Show the clients of a realm and which ones this operator manages.

    Example:
        celine-client-operator status --realm test
    """
    settings = get_settings()
    _configure_logging(settings, verbose)
    keycloak_settings = _build_keycloak_settings(base_url, admin_user, admin_password)

    typer.echo(f"Keycloak: {keycloak_settings.base_url} realm={realm}")

    try:
        asyncio.run(_async_status(keycloak_settings, realm))
    except KeycloakAuthError as e:
        raise _fail(f"Authentication failed: {e}")
    except KeycloakError as e:
        raise _fail(f"Keycloak error: {e}")


async def _async_status(settings: KeycloakSettings, realm: str) -> None:
    async with KeycloakAdminClient(settings) as keycloak:
        session = await keycloak.authorize()
        clients = await session.list_clients(realm)

    typer.echo(f"\nClients ({len(clients)}):")
    for client in sorted(clients, key=lambda c: c.client_id):
        marker = "*" if client.description == MANAGED_DESCRIPTION else " "
        typer.echo(
            f"  {marker} {client.client_id}"
            + (f" ({client.root_url})" if client.root_url else "")
        )
    typer.echo("\n* managed by this operator")


def register_commands(app: typer.Typer) -> None:
    app.command("reconcile")(reconcile)
    app.command("run")(run)
    app.command("delete")(delete)
    app.command("status")(status)
