"""Tests for the polling operator."""

import asyncio

import pytest

from celine.client_operator.credentials import SecretProjector
from celine.client_operator.keycloak.client import KeycloakAdminClient
from celine.client_operator.reconciler import ClientReconciler, ReconcileResult
from celine.client_operator.resources import CredentialArtifact
from celine.client_operator.runner import Operator, PassReport
from celine.client_operator.store import (
    InMemoryResourceStore,
    InMemorySecretStore,
    StoreError,
    YamlResourceStore,
)


@pytest.fixture
def build_operator(keycloak_settings, resource_store, secret_store):
    def _build(keycloak: KeycloakAdminClient, poll_interval: float = 60.0) -> Operator:
        reconciler = ClientReconciler(
            keycloak=keycloak,
            resources=resource_store,
            projector=SecretProjector(secret_store, keycloak_settings),
            requeue_after=poll_interval,
        )
        return Operator(
            reconciler=reconciler,
            resources=resource_store,
            secrets=secret_store,
            poll_interval=poll_interval,
            concurrency=2,
        )

    return _build


@pytest.mark.asyncio
async def test_run_once_reconciles_every_object(
    keycloak_settings, fake_keycloak, resource_store, make_resource, build_operator
):
    resource_store.add(make_resource(name="a", domain="a.example.com"))
    resource_store.add(make_resource(name="b", domain="b.example.com"))
    resource_store.add(make_resource(name="c", domain="c.example.com", realm="other"))

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        report = await build_operator(kc).run_once()

    assert report.success
    assert set(report.results) == {"a", "b", "c"}
    assert all(r.created for r in report.results.values())
    assert {c["clientId"] for c in fake_keycloak.clients("test")} == {
        "a.example.com",
        "b.example.com",
    }
    assert len(fake_keycloak.clients("other")) == 1


@pytest.mark.asyncio
async def test_errors_are_collected_per_object(
    keycloak_settings, fake_keycloak, resource_store, make_resource, build_operator
):
    resource_store.add(make_resource(name="good", domain="good.example.com"))
    resource_store.add(make_resource(name="bad", domain="bad.example.com", realm="broken"))
    fake_keycloak.forced[("POST", "/admin/realms/broken/clients")] = 500

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        report = await build_operator(kc).run_once()

    assert not report.success
    assert set(report.errors) == {"bad"}
    assert report.results["good"].created
    assert "Errors: 1" in report.summary()


@pytest.mark.asyncio
async def test_orphaned_secrets_are_collected(
    keycloak_settings, fake_keycloak, resource_store, secret_store, make_resource, build_operator
):
    resource_store.add(make_resource(name="demo"))
    await secret_store.create(
        CredentialArtifact(name="gone-keycloak", owner_name="gone", owner_uid="dead-uid")
    )

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        report = await build_operator(kc).run_once()

    assert report.secrets_collected == ["gone-keycloak"]
    assert [a.name for a in await secret_store.list()] == ["demo-keycloak"]


@pytest.mark.asyncio
async def test_deleted_object_loses_its_secret(
    keycloak_settings, fake_keycloak, resource_store, secret_store, make_resource, build_operator
):
    resource_store.add(make_resource())

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        operator = build_operator(kc)
        await operator.run_once()
        await resource_store.mark_deleted("demo")
        report = await operator.run_once()

    assert report.results["demo"].deleted
    assert report.secrets_collected == ["demo-keycloak"]
    assert await secret_store.list() == []
    assert fake_keycloak.clients("test") == []


@pytest.mark.asyncio
async def test_run_forever_stops_on_event(
    keycloak_settings, fake_keycloak, resource_store, make_resource, build_operator
):
    resource_store.add(make_resource())
    stop = asyncio.Event()

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        task = asyncio.create_task(build_operator(kc, poll_interval=0.01).run_forever(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    # Several passes ran, one client exists
    assert len(fake_keycloak.calls("POST")) > 2
    assert len(fake_keycloak.clients("test")) == 1


def test_report_delay_and_summary():
    report = PassReport(
        results={
            "a": ReconcileResult(requeue_after=60.0, client_uuid="1", created=True),
            "b": ReconcileResult(requeue_after=30.0, client_uuid="2"),
            "c": ReconcileResult(deleted=True),
        }
    )

    assert report.next_delay(90.0) == 30.0
    assert PassReport().next_delay(90.0) == 90.0
    assert report.summary().splitlines() == [
        "  + a (1)",
        "  = b (2)",
        "  - c (deleted)",
    ]
    assert PassReport().summary() == "Nothing to reconcile"


MANIFEST = """\
apiVersion: keycloak.celine.eu/v1alpha1
kind: KeycloakClient
metadata:
  name: {name}
spec:
  realm: test
  domain: {name}.example.com
"""


@pytest.mark.asyncio
async def test_unreadable_manifest_fails_alone(keycloak_settings, fake_keycloak, tmp_path):
    (tmp_path / "a.yaml").write_text(MANIFEST.format(name="a"))
    (tmp_path / "broken.yaml").write_text("metadata: [unterminated\n")
    resources = YamlResourceStore(tmp_path)
    secrets = InMemorySecretStore()
    await secrets.create(
        CredentialArtifact(name="b-keycloak", owner_name="b", owner_uid="uid-of-b")
    )

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        operator = Operator(
            reconciler=ClientReconciler(
                keycloak=kc,
                resources=resources,
                projector=SecretProjector(secrets, keycloak_settings),
            ),
            resources=resources,
            secrets=secrets,
        )
        report = await operator.run_once()

    assert report.results["a"].created
    assert list(report.errors) == ["broken.yaml"]
    # The owner of b-keycloak may be the unreadable manifest
    assert report.secrets_collected == []
    assert await secrets.get("b-keycloak") is not None
    assert [c["clientId"] for c in fake_keycloak.clients("test")] == ["a.example.com"]


class FlakyResourceStore(InMemoryResourceStore):
    """Fails the first listing, like a manifest caught mid-edit."""

    def __init__(self, resources=None):
        super().__init__(resources)
        self.listings = 0

    async def list(self):
        self.listings += 1
        if self.listings == 1:
            raise StoreError("Failed to read broken.yaml")
        return await super().list()


@pytest.mark.asyncio
async def test_run_forever_survives_failed_pass(
    keycloak_settings, fake_keycloak, secret_store, make_resource
):
    resources = FlakyResourceStore([make_resource()])
    stop = asyncio.Event()

    async with KeycloakAdminClient(keycloak_settings, transport=fake_keycloak.transport) as kc:
        operator = Operator(
            reconciler=ClientReconciler(
                keycloak=kc,
                resources=resources,
                projector=SecretProjector(secret_store, keycloak_settings),
                requeue_after=0.01,
            ),
            resources=resources,
            secrets=secret_store,
            poll_interval=0.01,
        )
        task = asyncio.create_task(operator.run_forever(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

    assert resources.listings > 1
    assert len(fake_keycloak.clients("test")) == 1
