"""Keycloak connection settings.

Settings can be provided via:
1. Environment variables (KEYCLOAK_URL, KEYCLOAK_USER, KEYCLOAK_PASSWORD)
2. CLI arguments (--base-url, --admin-user, --admin-password)
"""

from __future__ import annotations

from urllib.parse import quote

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Public client used for the admin password grant in the master realm
DEFAULT_ADMIN_CLIENT_ID = "admin-cli"


def escape_segment(value: str) -> str:
    """Percent-escape a single URL path segment."""
    return quote(value, safe="")


class KeycloakSettings(BaseSettings):
    """Keycloak connection and authentication settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEYCLOAK_",
        extra="ignore",
        populate_by_name=True,
    )

    # Connection
    base_url: str = Field(
        default="http://localhost:8080",
        validation_alias=AliasChoices("base_url", "KEYCLOAK_URL"),
        description="Keycloak base URL",
    )
    timeout: float = Field(
        default=30.0,
        description="HTTP request timeout in seconds",
    )

    # Admin user authentication (master realm)
    admin_user: str | None = Field(
        default=None,
        validation_alias=AliasChoices("admin_user", "KEYCLOAK_USER"),
        description="Keycloak admin username",
    )
    admin_password: str | None = Field(
        default=None,
        validation_alias=AliasChoices("admin_password", "KEYCLOAK_PASSWORD"),
        description="Keycloak admin password",
    )
    admin_client_id: str = Field(
        default=DEFAULT_ADMIN_CLIENT_ID,
        description="Client used for the admin password grant",
    )

    @property
    def root_url(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def token_url(self) -> str:
        """Get the master realm token endpoint (for admin token)."""
        return f"{self.root_url}/realms/master/protocol/openid-connect/token"

    @property
    def has_admin_credentials(self) -> bool:
        """Check if admin user credentials are available."""
        return bool(self.admin_user and self.admin_password)

    def realm_url(self, realm: str) -> str:
        """Get the public realm URL."""
        return f"{self.root_url}/realms/{escape_segment(realm)}"

    def discovery_url(self, realm: str) -> str:
        """Get the OpenID discovery document URL for a realm."""
        return f"{self.realm_url(realm)}/.well-known/openid-configuration"

    def admin_clients_url(self, realm: str, client_uuid: str | None = None) -> str:
        """Get the admin API clients collection (or a single client) URL."""
        url = f"{self.root_url}/admin/realms/{escape_segment(realm)}/clients"
        if client_uuid is not None:
            url = f"{url}/{escape_segment(client_uuid)}"
        return url

    def with_overrides(
        self,
        *,
        base_url: str | None = None,
        admin_user: str | None = None,
        admin_password: str | None = None,
        timeout: float | None = None,
    ) -> "KeycloakSettings":
        """Create a new settings instance with CLI overrides applied."""
        return KeycloakSettings(
            base_url=base_url or self.base_url,
            timeout=timeout or self.timeout,
            admin_user=admin_user or self.admin_user,
            admin_password=admin_password or self.admin_password,
            admin_client_id=self.admin_client_id,
        )
