"""Desired-state and credential artifact models.

Example KeycloakClient manifest:
    apiVersion: keycloak.celine.eu/v1alpha1
    kind: KeycloakClient
    metadata:
      name: demo
      uid: 6f1c3c9e-6a7b-4c1e-9d55-0b8f6c1f2a10   # assigned once by the store
    spec:
      realm: test
      domain: demo.example.com
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

API_VERSION = "keycloak.celine.eu/v1alpha1"
KIND = "KeycloakClient"

# Guards removal of a KeycloakClient until its Keycloak client is gone
FINALIZER = "keycloak.celine.eu/client-finalizer"

# Credential artifact labels
LABEL_RESOURCE_NAME = "keycloak-cr"
LABEL_CLIENT_ID = "keycloak-id"


class FinalizerState(str, Enum):
    """Whether the cleanup finalizer is recorded on the object."""

    ABSENT = "absent"
    PRESENT = "present"


class ResourceMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Object name, unique in the store")
    uid: str = Field(default="", description="Stable identifier assigned by the store")
    deletion_timestamp: datetime | None = Field(
        default=None,
        alias="deletionTimestamp",
        description="Set when deletion was requested",
    )
    finalizers: list[str] = Field(default_factory=list)


class KeycloakClientSpec(BaseModel):
    realm: str = Field(..., description="Keycloak realm holding the client")
    domain: str = Field(..., description="Domain the client is issued for")


class KeycloakClientResource(BaseModel):
    """Desired OAuth client, as declared by the user."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = Field(default=KIND)
    metadata: ResourceMeta
    spec: KeycloakClientSpec

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def uid(self) -> str:
        return self.metadata.uid

    @property
    def deletion_requested(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    @property
    def finalizer(self) -> FinalizerState:
        if FINALIZER in self.metadata.finalizers:
            return FinalizerState.PRESENT
        return FinalizerState.ABSENT

    @property
    def secret_name(self) -> str:
        """Name of the credential artifact projected for this object."""
        return f"{self.metadata.name}-keycloak"

    def with_finalizer(self, state: FinalizerState) -> "KeycloakClientResource":
        """Copy of this object with the finalizer moved to the given state."""
        if state == self.finalizer:
            return self
        finalizers = [f for f in self.metadata.finalizers if f != FINALIZER]
        if state == FinalizerState.PRESENT:
            finalizers.append(FINALIZER)
        metadata = self.metadata.model_copy(update={"finalizers": finalizers})
        return self.model_copy(update={"metadata": metadata})

    def to_manifest(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class CredentialArtifact(BaseModel):
    """Client credentials projected from a Keycloak client."""

    name: str
    owner_name: str
    owner_uid: str
    labels: dict[str, str] = Field(default_factory=dict)
    data: dict[str, bytes] = Field(default_factory=dict)
    type: str = "Opaque"
    immutable: bool = True
