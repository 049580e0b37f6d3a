"""Project Keycloak client credentials into a stored artifact."""

from __future__ import annotations

import logging

from celine.client_operator.keycloak.models import ClientDetails
from celine.client_operator.keycloak.settings import KeycloakSettings
from celine.client_operator.resources import (
    LABEL_CLIENT_ID,
    LABEL_RESOURCE_NAME,
    CredentialArtifact,
    KeycloakClientResource,
)
from celine.client_operator.store import SecretStore

logger = logging.getLogger(__name__)


class SecretProjector:
    """Keeps the credential artifact of a KeycloakClient in line with Keycloak."""

    def __init__(self, store: SecretStore, settings: KeycloakSettings):
        self._store = store
        self._settings = settings

    def build_artifact(
        self, record: ClientDetails, resource: KeycloakClientResource
    ) -> CredentialArtifact:
        realm = resource.spec.realm
        return CredentialArtifact(
            name=resource.secret_name,
            owner_name=resource.name,
            owner_uid=resource.uid,
            labels={
                LABEL_RESOURCE_NAME: resource.name,
                LABEL_CLIENT_ID: record.id,
            },
            data={
                "clientID": record.client_id.encode(),
                "clientSecret": record.secret.encode(),
                "realm": realm.encode(),
                "realmURL": self._settings.realm_url(realm).encode(),
                "discoveryURL": self._settings.discovery_url(realm).encode(),
            },
        )

    async def sync(
        self, record: ClientDetails, resource: KeycloakClientResource
    ) -> CredentialArtifact:
        """Create the artifact if missing, otherwise overwrite it whole."""
        artifact = self.build_artifact(record, resource)
        existing = await self._store.get(artifact.name)
        if existing is None:
            logger.info("New secret will be created: %s", artifact.name)
            await self._store.create(artifact)
        else:
            await self._store.replace(artifact)
        return artifact
