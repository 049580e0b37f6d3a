"""Pydantic models for Keycloak client representations.

Field names follow the Keycloak admin REST API (camelCase on the wire),
exposed as snake_case attributes.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ClientDraft(BaseModel):
    """Locally built client fields, not yet applied to Keycloak.

    Empty values are left out of the request payload, so Keycloak keeps
    whatever it has for them.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    client_id: str = Field(default="", alias="clientId")
    client_secret: str = Field(default="", alias="secret")
    root_url: str = Field(default="", alias="rootUrl")
    admin_url: str = Field(default="", alias="adminUrl")
    redirect_uris: list[str] = Field(default_factory=list, alias="redirectUris")
    web_origins: list[str] = Field(default_factory=list, alias="webOrigins")
    name: str = Field(default="")
    id: str = Field(default="")
    description: str = Field(default="")

    def to_payload(self) -> dict[str, Any]:
        """Request body for create/update calls."""
        return self.model_dump(by_alias=True, exclude_defaults=True)


class ClientAttributes(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    post_logout_redirect_uris: str = Field(
        default="", alias="post.logout.redirect.uris"
    )


class ClientAccess(BaseModel):
    view: bool = False
    configure: bool = False
    manage: bool = False


class Client(BaseModel):
    """Client as returned by the clients listing endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    client_id: str = Field(default="", alias="clientId")
    name: str = ""
    description: str = ""
    admin_url: str = Field(default="", alias="adminUrl")
    root_url: str = Field(default="", alias="rootUrl")
    base_url: str = Field(default="", alias="baseUrl")
    surrogate_auth_required: bool = Field(default=False, alias="surrogateAuthRequired")
    enabled: bool = False
    always_display_in_console: bool = Field(default=False, alias="alwaysDisplayInConsole")
    client_authenticator_type: str = Field(default="", alias="clientAuthenticatorType")
    redirect_uris: list[str] = Field(default_factory=list, alias="redirectUris")
    web_origins: list[str] = Field(default_factory=list, alias="webOrigins")
    not_before: int = Field(default=0, alias="notBefore")
    bearer_only: bool = Field(default=False, alias="bearerOnly")
    consent_required: bool = Field(default=False, alias="consentRequired")
    standard_flow_enabled: bool = Field(default=False, alias="standardFlowEnabled")
    implicit_flow_enabled: bool = Field(default=False, alias="implicitFlowEnabled")
    direct_access_grants_enabled: bool = Field(
        default=False, alias="directAccessGrantsEnabled"
    )
    service_accounts_enabled: bool = Field(default=False, alias="serviceAccountsEnabled")
    public_client: bool = Field(default=False, alias="publicClient")
    frontchannel_logout: bool = Field(default=False, alias="frontchannelLogout")
    protocol: str = ""
    attributes: ClientAttributes = Field(default_factory=ClientAttributes)
    full_scope_allowed: bool = Field(default=False, alias="fullScopeAllowed")
    node_re_registration_timeout: int = Field(
        default=0, alias="nodeReRegistrationTimeout"
    )
    default_client_scopes: list[str] = Field(
        default_factory=list, alias="defaultClientScopes"
    )
    optional_client_scopes: list[str] = Field(
        default_factory=list, alias="optionalClientScopes"
    )
    access: ClientAccess = Field(default_factory=ClientAccess)


class ClientDetails(Client):
    """Single-client view. Only this one carries the secret."""

    secret: str = ""


class ClientList:
    """Result of listing the clients of a realm.

    Lookups return the first match in the order Keycloak returned them.
    """

    def __init__(self, clients: list[Client]):
        self._clients = clients

    def __iter__(self):
        return iter(self._clients)

    def __len__(self) -> int:
        return len(self._clients)

    def all(self) -> list[Client]:
        return list(self._clients)

    def find(self, client_id: str) -> Client | None:
        """Find a client by clientId."""
        for client in self._clients:
            if client.client_id == client_id:
                return client
        return None

    def by_name(self, name: str) -> Client | None:
        """Find a client by display name."""
        for client in self._clients:
            if client.name == name:
                return client
        return None
