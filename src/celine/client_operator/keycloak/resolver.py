"""Locate the Keycloak client that belongs to a desired-state object."""

from __future__ import annotations

import logging

from celine.client_operator.keycloak.client import AuthorizedSession, KeycloakError
from celine.client_operator.keycloak.models import ClientDetails

logger = logging.getLogger(__name__)


class ClientLookupError(KeycloakError):
    """Lookup by id and lookup by name disagree."""

    pass


async def resolve_client(
    session: AuthorizedSession,
    realm: str,
    client_uuid: str,
    name: str,
) -> ClientDetails | None:
    """Find a client by id, falling back to a lookup by name.

    The name fallback covers clients created before their id was known to
    Keycloak (pre-provisioned, or a first sync). A name hit is re-fetched by
    id because only the single-client view carries the secret.

    Returns None if neither lookup finds the client. Any other failure is
    raised without trying the fallback.
    """
    existing = await session.get_client(realm, client_uuid)
    if existing is not None:
        return existing

    clients = await session.list_clients(realm)
    item = clients.by_name(name)
    if item is None:
        logger.debug("No client with id %s or name %s in realm %s", client_uuid, name, realm)
        return None

    details = await session.get_client(realm, item.id)
    if details is None:
        raise ClientLookupError(
            f"Client {name!r} is listed with id {item.id} in realm {realm!r} "
            "but cannot be fetched by that id"
        )
    logger.debug("Resolved client %s by name (id=%s)", name, item.id)
    return details
