"""Client draft generation from a domain name."""

from __future__ import annotations

import secrets

from celine.client_operator.keycloak.models import ClientDraft

# 256-bit secret, hex encoded to 64 characters
SECRET_BYTES = 32


def generate_secret() -> str:
    """Generate a client secret from the OS CSPRNG."""
    return secrets.token_hex(SECRET_BYTES)


def generate_draft(domain: str) -> ClientDraft:
    """Build the full desired client configuration for a domain.

    Everything but the secret is derived from the domain; the secret is
    freshly sampled on every call.
    """
    client_url = f"https://{domain}"
    return ClientDraft(
        client_id=domain,
        client_secret=generate_secret(),
        root_url=client_url,
        admin_url=client_url,
        redirect_uris=[f"{client_url}/*"],
        web_origins=[client_url],
        name=domain,
    )
