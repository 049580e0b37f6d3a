"""Pytest configuration and fixtures."""

import json
import secrets
import uuid
from urllib.parse import parse_qs

import httpx
import pytest

from celine.client_operator.keycloak.settings import KeycloakSettings
from celine.client_operator.resources import (
    KeycloakClientResource,
    KeycloakClientSpec,
    ResourceMeta,
)
from celine.client_operator.store import InMemoryResourceStore, InMemorySecretStore

BASE_URL = "http://keycloak.test"
TOKEN = "Bearer test-token"

# Fields Keycloak fills in for a new client
CLIENT_DEFAULTS = {
    "enabled": True,
    "protocol": "openid-connect",
    "publicClient": False,
    "standardFlowEnabled": True,
    "clientAuthenticatorType": "client-secret",
    "fullScopeAllowed": True,
    "defaultClientScopes": ["web-origins", "profile", "roles", "email"],
    "optionalClientScopes": ["address", "phone", "offline_access"],
    "access": {"view": True, "configure": True, "manage": True},
}


class FakeKeycloak:
    """In-memory Keycloak admin API, served through httpx.MockTransport."""

    def __init__(self, username: str = "admin", password: str = "admin"):
        self.username = username
        self.password = password
        self.realms: dict[str, dict[str, dict]] = {}
        self.requests: list[tuple[str, str]] = []
        # (method, path) -> status code returned instead of handling the call
        self.forced: dict[tuple[str, str], int] = {}
        self.transport = httpx.MockTransport(self.handle)

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def add_client(self, realm: str, **fields) -> dict:
        client = {**CLIENT_DEFAULTS, **fields}
        client.setdefault("id", str(uuid.uuid4()))
        client.setdefault("secret", secrets.token_hex(32))
        self.realms.setdefault(realm, {})[client["id"]] = client
        return client

    def clients(self, realm: str) -> list[dict]:
        return list(self.realms.get(realm, {}).values())

    def calls(self, method: str) -> list[str]:
        return [path for m, path in self.requests if m == method]

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))

        forced = self.forced.get((request.method, path))
        if forced is not None:
            return httpx.Response(forced, text="forced failure")

        if path == "/realms/master/protocol/openid-connect/token":
            return self._token(request)

        if request.headers.get("Authorization") != TOKEN:
            return httpx.Response(401, json={"error": "HTTP 401 Unauthorized"})

        parts = path.strip("/").split("/")
        if parts[:2] != ["admin", "realms"] or len(parts) < 4 or parts[3] != "clients":
            return httpx.Response(404)

        realm = parts[2]
        clients = self.realms.setdefault(realm, {})
        if len(parts) == 4:
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json=[{k: v for k, v in c.items() if k != "secret"} for c in clients.values()],
                )
            if request.method == "POST":
                return self._create(request, clients)
        elif len(parts) == 5:
            client_uuid = parts[4]
            if client_uuid not in clients:
                return httpx.Response(404, json={"error": "Could not find client"})
            if request.method == "GET":
                return httpx.Response(200, json=clients[client_uuid])
            if request.method == "PUT":
                body = json.loads(request.content)
                body.pop("id", None)
                clients[client_uuid].update(body)
                return httpx.Response(204)
            if request.method == "DELETE":
                del clients[client_uuid]
                return httpx.Response(204)
        return httpx.Response(405)

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if (
            form.get("grant_type") != "password"
            or form.get("client_id") != "admin-cli"
            or form.get("username") != self.username
            or form.get("password") != self.password
        ):
            return httpx.Response(401, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={"token_type": "Bearer", "access_token": "test-token", "expires_in": 60},
        )

    def _create(self, request: httpx.Request, clients: dict[str, dict]) -> httpx.Response:
        body = json.loads(request.content)
        if any(c.get("clientId") == body.get("clientId") for c in clients.values()):
            return httpx.Response(409, json={"errorMessage": "Client already exists"})
        client = {**CLIENT_DEFAULTS, **body}
        client.setdefault("id", str(uuid.uuid4()))
        client.setdefault("secret", secrets.token_hex(32))
        clients[client["id"]] = client
        return httpx.Response(
            201, headers={"Location": f"{request.url}/{client['id']}"}
        )


class FakeStructLogger:
    def __init__(self):
        self.calls = []

    def debug(self, **kwargs):
        self.calls.append(("debug", kwargs))

    def info(self, **kwargs):
        self.calls.append(("info", kwargs))

    def warning(self, **kwargs):
        self.calls.append(("warning", kwargs))

    def error(self, **kwargs):
        self.calls.append(("error", kwargs))

    def events(self) -> list[str]:
        return [payload["event"] for _, payload in self.calls]


@pytest.fixture
def fake_keycloak() -> FakeKeycloak:
    """Empty Keycloak with admin/admin credentials."""
    return FakeKeycloak()


@pytest.fixture
def keycloak_settings() -> KeycloakSettings:
    return KeycloakSettings(
        base_url=BASE_URL,
        admin_user="admin",
        admin_password="admin",
        timeout=5.0,
    )


@pytest.fixture
def fake_audit_logger() -> FakeStructLogger:
    return FakeStructLogger()


@pytest.fixture
def make_resource():
    """Factory for KeycloakClient objects."""

    def _make(
        name: str = "demo",
        domain: str = "demo.example.com",
        realm: str = "test",
        uid: str | None = None,
        finalizers: list[str] | None = None,
    ) -> KeycloakClientResource:
        return KeycloakClientResource(
            metadata=ResourceMeta(
                name=name,
                uid=uid or str(uuid.uuid4()),
                finalizers=finalizers or [],
            ),
            spec=KeycloakClientSpec(realm=realm, domain=domain),
        )

    return _make


@pytest.fixture
def resource_store() -> InMemoryResourceStore:
    return InMemoryResourceStore()


@pytest.fixture
def secret_store() -> InMemorySecretStore:
    return InMemorySecretStore()
