"""Keycloak Admin API client.

Wraps the parts of the Keycloak Admin REST API needed to manage OAuth
clients of a realm:
- Admin token acquisition (password grant against the master realm)
- Client listing, lookup, creation, replacement and deletion

Every reconciliation pass authorizes once and passes the resulting
AuthorizedSession to each call. A failed authorization does not raise:
the session keeps the error and every call made through it raises it.
"""

from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

import httpx

from celine.client_operator.keycloak.models import (
    Client,
    ClientDetails,
    ClientDraft,
    ClientList,
)
from celine.client_operator.keycloak.settings import KeycloakSettings

logger = logging.getLogger(__name__)


class KeycloakError(Exception):
    """Base exception for Keycloak API errors."""

    def __init__(
        self, message: str, status_code: int | None = None, response: dict | None = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class KeycloakAuthError(KeycloakError):
    """Authentication failed."""

    pass


class KeycloakNotFoundError(KeycloakError):
    """Resource not found."""

    pass


class KeycloakConflictError(KeycloakError):
    """Resource already exists."""

    pass


class KeycloakEncodingError(KeycloakError):
    """Request payload could not be serialized."""

    pass


def _handle_response(response: httpx.Response, expected_status: int) -> httpx.Response:
    """Map unexpected status codes to exceptions."""
    if response.status_code == expected_status:
        return response

    if response.status_code == 404:
        raise KeycloakNotFoundError(
            f"Resource not found: {response.request.url}",
            status_code=404,
        )

    if response.status_code == 409:
        raise KeycloakConflictError(
            f"Resource already exists: {response.text}",
            status_code=409,
        )

    if response.status_code == 401:
        raise KeycloakAuthError(
            "Authentication expired or invalid",
            status_code=401,
        )

    raise KeycloakError(
        f"Unexpected response {response.status_code}: {response.text}",
        status_code=response.status_code,
    )


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise KeycloakError(
            f"Invalid JSON from {response.request.url}: {e}",
            status_code=response.status_code,
        ) from e


def _encode(draft: ClientDraft) -> bytes:
    try:
        return json.dumps(draft.to_payload()).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise KeycloakEncodingError(f"Failed to encode client payload: {e}") from e


class AuthorizedSession:
    """Bearer-token handle for one batch of admin API calls."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        settings: KeycloakSettings,
        token: str | None = None,
        error: KeycloakError | None = None,
    ):
        self._http = http
        self._settings = settings
        self._token = token
        self._error = error

    @classmethod
    def failed(
        cls, http: httpx.AsyncClient, settings: KeycloakSettings, error: KeycloakError
    ) -> "AuthorizedSession":
        return cls(http, settings, error=error)

    @property
    def error(self) -> KeycloakError | None:
        """Error captured while authorizing, if any."""
        return self._error

    def _headers(self, json_body: bool = False) -> dict[str, str]:
        if self._error is not None:
            raise self._error
        headers = {"Authorization": self._token or ""}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        expected_status: int,
        content: bytes | None = None,
    ) -> httpx.Response:
        headers = self._headers(json_body=content is not None)
        try:
            response = await self._http.request(
                method, url, headers=headers, content=content
            )
        except httpx.HTTPError as e:
            raise KeycloakError(f"{method} {url} failed: {e}") from e
        return _handle_response(response, expected_status)

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    async def get_client(self, realm: str, client_uuid: str) -> ClientDetails | None:
        """Get a client by its Keycloak id.

        Returns None if Keycloak has no such client.
        """
        url = self._settings.admin_clients_url(realm, client_uuid)
        try:
            response = await self._request("GET", url, expected_status=200)
        except KeycloakNotFoundError:
            return None
        try:
            return ClientDetails.model_validate(_decode(response))
        except ValueError as e:
            raise KeycloakError(f"Invalid client representation: {e}") from e

    async def list_clients(self, realm: str) -> ClientList:
        """List all clients in the realm."""
        url = self._settings.admin_clients_url(realm)
        response = await self._request("GET", url, expected_status=200)
        payload = _decode(response)
        try:
            clients = [Client.model_validate(item) for item in payload]
        except (TypeError, ValueError) as e:
            raise KeycloakError(f"Invalid clients listing: {e}") from e
        return ClientList(clients)

    async def create_client(self, realm: str, draft: ClientDraft) -> str:
        """Create a new client.

        Returns the id of the created client, taken from the Location header.
        """
        body = _encode(draft)
        url = self._settings.admin_clients_url(realm)

        logger.debug("Creating client: %s", draft.client_id)
        response = await self._request("POST", url, expected_status=201, content=body)

        location = response.headers.get("Location", "")
        client_uuid = PurePosixPath(urlparse(location).path).name
        if not client_uuid:
            raise KeycloakError(
                "Created client but response has no Location",
                status_code=response.status_code,
            )
        logger.info("Created client: %s (id=%s)", draft.client_id, client_uuid)
        return client_uuid

    async def update_client(self, realm: str, client_uuid: str, draft: ClientDraft) -> None:
        """Replace the fields carried by the draft on an existing client."""
        body = _encode(draft)
        url = self._settings.admin_clients_url(realm, client_uuid)

        logger.debug("Updating client: %s", client_uuid)
        await self._request("PUT", url, expected_status=204, content=body)
        logger.info("Updated client: %s", client_uuid)

    async def delete_client(self, realm: str, client_uuid: str) -> None:
        """Delete a client.

        Deleting a client that does not exist raises KeycloakNotFoundError.
        """
        url = self._settings.admin_clients_url(realm, client_uuid)

        logger.debug("Deleting client: %s", client_uuid)
        await self._request("DELETE", url, expected_status=204)
        logger.info("Deleted client: %s", client_uuid)


class KeycloakAdminClient:
    """Async client for Keycloak Admin REST API."""

    def __init__(
        self,
        settings: KeycloakSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "KeycloakAdminClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=self._settings.timeout, transport=self._transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def authorize(self) -> AuthorizedSession:
        """Obtain an admin token via the password grant.

        Never raises for HTTP or decoding failures; the returned session
        carries the error instead.
        """
        if self._client is None:
            raise RuntimeError("KeycloakAdminClient must be used as an async context manager")

        data = {
            "grant_type": "password",
            "client_id": self._settings.admin_client_id,
            "username": self._settings.admin_user or "",
            "password": self._settings.admin_password or "",
        }

        logger.debug("Authenticating with admin user: %s", self._settings.admin_user)

        try:
            response = await self._client.post(self._settings.token_url, data=data)
        except httpx.HTTPError as e:
            return AuthorizedSession.failed(
                self._client,
                self._settings,
                KeycloakAuthError(f"Token request failed: {e}"),
            )

        if response.status_code != 200:
            return AuthorizedSession.failed(
                self._client,
                self._settings,
                KeycloakAuthError(
                    f"Admin user authentication failed: {response.text}",
                    status_code=response.status_code,
                ),
            )

        try:
            payload = response.json()
            token = f"{payload['token_type']} {payload['access_token']}"
        except (ValueError, KeyError, TypeError) as e:
            return AuthorizedSession.failed(
                self._client,
                self._settings,
                KeycloakAuthError(f"Invalid token response: {e}"),
            )

        logger.debug("Authenticated as admin user: %s", self._settings.admin_user)
        return AuthorizedSession(self._client, self._settings, token=token)
