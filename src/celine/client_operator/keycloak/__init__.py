"""Keycloak admin API access.

Provides the admin client, client lookup and draft generation used by the
reconciler.
"""

from celine.client_operator.keycloak.settings import KeycloakSettings
from celine.client_operator.keycloak.models import (
    Client,
    ClientDetails,
    ClientDraft,
    ClientList,
)
from celine.client_operator.keycloak.client import (
    AuthorizedSession,
    KeycloakAdminClient,
    KeycloakAuthError,
    KeycloakConflictError,
    KeycloakEncodingError,
    KeycloakError,
    KeycloakNotFoundError,
)
from celine.client_operator.keycloak.draft import generate_draft
from celine.client_operator.keycloak.resolver import ClientLookupError, resolve_client

__all__ = [
    "KeycloakSettings",
    "Client",
    "ClientDetails",
    "ClientDraft",
    "ClientList",
    "AuthorizedSession",
    "KeycloakAdminClient",
    "KeycloakAuthError",
    "KeycloakConflictError",
    "KeycloakEncodingError",
    "KeycloakError",
    "KeycloakNotFoundError",
    "generate_draft",
    "ClientLookupError",
    "resolve_client",
]
