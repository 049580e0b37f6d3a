"""CELINE Client Operator CLI - Main entrypoint.

Usage:
    celine-client-operator reconcile --manifests-dir clients/
    celine-client-operator run
"""

from __future__ import annotations

import typer

from celine.client_operator.cli.commands import register_commands

app = typer.Typer(
    name="celine-client-operator",
    help="Keep Keycloak OAuth clients in sync with KeycloakClient manifests",
    add_completion=True,
)

register_commands(app)


def create_app() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    create_app()
