"""Reconciliation of KeycloakClient objects against Keycloak.

One pass over a KeycloakClient:

1. Deletion requested: delete the Keycloak client (absent counts as done),
   then release the finalizer so the object can go away.
2. Record the finalizer before touching Keycloak.
3. Find the Keycloak client by id, then by name; create it if missing.
4. Correct drift in the fields this operator owns (name, URLs, redirect
   URIs, web origins). Secret and ids are never changed.
5. Mirror the client credentials into the credential artifact.
6. Ask to be called again after the poll interval.

Every step can be re-run safely, so a failed pass is simply retried whole
on the next delivery. The caller guarantees one pass per object at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from celine.client_operator.audit import ReconcileAuditLogger
from celine.client_operator.credentials import SecretProjector
from celine.client_operator.keycloak.client import (
    AuthorizedSession,
    KeycloakAdminClient,
    KeycloakError,
)
from celine.client_operator.keycloak.draft import generate_draft
from celine.client_operator.keycloak.models import ClientDetails, ClientDraft
from celine.client_operator.keycloak.resolver import resolve_client
from celine.client_operator.resources import FinalizerState, KeycloakClientResource
from celine.client_operator.store import ResourceStore, StoreError

logger = logging.getLogger(__name__)

MANAGED_DESCRIPTION = "managed by celine-client-operator"
DEFAULT_REQUEUE_AFTER = 60.0


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    requeue_after: float | None = None
    client_uuid: str | None = None
    created: bool = False
    updated: bool = False
    deleted: bool = False


def same_members(left: list[str], right: list[str]) -> bool:
    """Compare two URI lists ignoring order and repeats."""
    return set(left) == set(right)


def mostly_the_same(domain: str, record: ClientDetails) -> tuple[ClientDraft, list[str]]:
    """Build the desired draft for an existing client and diff it.

    The draft is generated from the domain, then takes the secret, clientId,
    id and description of the existing client so those never change.

    Returns the draft and the names of the owned fields that differ.
    Redirect URIs and web origins are compared as sets.
    """
    draft = generate_draft(domain).model_copy(
        update={
            "client_secret": record.secret,
            "client_id": record.client_id,
            "id": record.id,
            "description": record.description,
        }
    )

    drifted = []
    if draft.name != record.name:
        drifted.append("name")
    if draft.root_url != record.root_url:
        drifted.append("rootUrl")
    if draft.admin_url != record.admin_url:
        drifted.append("adminUrl")
    if not same_members(draft.redirect_uris, record.redirect_uris):
        drifted.append("redirectUris")
    if not same_members(draft.web_origins, record.web_origins):
        drifted.append("webOrigins")
    return draft, drifted


class ClientReconciler:
    """Converges Keycloak and stored credentials to KeycloakClient objects."""

    def __init__(
        self,
        keycloak: KeycloakAdminClient,
        resources: ResourceStore,
        projector: SecretProjector,
        audit: ReconcileAuditLogger | None = None,
        requeue_after: float = DEFAULT_REQUEUE_AFTER,
    ):
        self._keycloak = keycloak
        self._resources = resources
        self._projector = projector
        self._audit = audit or ReconcileAuditLogger()
        self._requeue_after = requeue_after

    async def reconcile(self, name: str) -> ReconcileResult:
        """Run one pass for the named object.

        Errors are raised after being audited; nothing is retried here.
        """
        resource = await self._resources.get(name)
        if resource is None:
            logger.debug("KeycloakClient %s is gone, nothing to do", name)
            return ReconcileResult()

        with self._audit.bound(resource):
            session = await self._keycloak.authorize()
            try:
                if resource.deletion_requested:
                    client_uuid = await self.remove_client(session, resource)
                    return ReconcileResult(client_uuid=client_uuid, deleted=True)
                return await self._sync(session, resource)
            except Exception as e:
                logger.error("Reconcile of %s failed: %s", name, e)
                self._audit.reconcile_failed(resource, e)
                raise

    async def _sync(
        self, session: AuthorizedSession, resource: KeycloakClientResource
    ) -> ReconcileResult:
        # The finalizer must be stored before a Keycloak client can exist
        if resource.finalizer == FinalizerState.ABSENT:
            stored = await self._resources.update(
                resource.with_finalizer(FinalizerState.PRESENT)
            )
            if stored is None:
                raise StoreError(f"KeycloakClient {resource.name!r} vanished while adding finalizer")
            resource = stored

        record, created = await self.get_or_create_client(session, resource)
        updated = await self.update_client(session, record, resource)

        record, _ = await self.get_or_create_client(session, resource)
        artifact = await self._projector.sync(record, resource)
        self._audit.secret_synced(resource, artifact.name)

        return ReconcileResult(
            requeue_after=self._requeue_after,
            client_uuid=record.id,
            created=created,
            updated=updated,
        )

    async def get_or_create_client(
        self, session: AuthorizedSession, resource: KeycloakClientResource
    ) -> tuple[ClientDetails, bool]:
        """Find the Keycloak client of an object, creating it if missing.

        Returns the client and whether it was created.
        """
        realm = resource.spec.realm
        existing = await resolve_client(session, realm, resource.uid, resource.spec.domain)
        if existing is not None:
            return existing, False

        draft = generate_draft(resource.spec.domain).model_copy(
            update={"id": resource.uid, "description": MANAGED_DESCRIPTION}
        )
        client_uuid = await session.create_client(realm, draft)
        logger.info("Client created: %s", draft.name)

        # Creation does not return the client, and only a get returns the secret
        created = await session.get_client(realm, client_uuid)
        if created is None:
            raise KeycloakError(
                f"Client {draft.name!r} was created but id {client_uuid} cannot be fetched"
            )
        self._audit.client_created(resource, created.id)
        return created, True

    async def update_client(
        self,
        session: AuthorizedSession,
        record: ClientDetails,
        resource: KeycloakClientResource,
    ) -> bool:
        """Correct drift of owned fields. Returns whether an update was sent."""
        draft, drifted = mostly_the_same(resource.spec.domain, record)
        if not drifted:
            return False

        # The id goes in the URL, not in the body
        await session.update_client(
            resource.spec.realm, record.id, draft.model_copy(update={"id": ""})
        )
        logger.info("Keycloak client %s synced with manifest (%s)", record.id, ", ".join(drifted))
        self._audit.client_updated(resource, record.id, drifted)
        return True

    async def remove_client(
        self, session: AuthorizedSession, resource: KeycloakClientResource
    ) -> str | None:
        """Delete the Keycloak client, then release the finalizer.

        Returns the id of the deleted client, or None if it was already gone.
        """
        realm = resource.spec.realm
        existing = await resolve_client(session, realm, resource.uid, resource.spec.domain)
        client_uuid = None
        if existing is not None:
            await session.delete_client(realm, existing.id)
            client_uuid = existing.id
        else:
            logger.info("Client for %s already absent from realm %s", resource.name, realm)

        await self._resources.update(resource.with_finalizer(FinalizerState.ABSENT))
        logger.info("Client removed: %s", resource.name)
        self._audit.client_deleted(resource, client_uuid)
        return client_uuid
