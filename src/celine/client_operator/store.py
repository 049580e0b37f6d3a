"""Storage for desired-state objects and credential artifacts.

The reconciler only depends on the ResourceStore and SecretStore protocols.
Two implementations are provided:
- In-memory stores (tests, embedding)
- YAML directory stores (one file per object), used by the CLI
"""

from __future__ import annotations

import base64
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import yaml
from pydantic import ValidationError

from celine.client_operator.resources import (
    KIND,
    CredentialArtifact,
    KeycloakClientResource,
)

logger = logging.getLogger(__name__)

SECRETS_FILE_HEADER = "# WARNING: This file contains sensitive credentials. DO NOT COMMIT.\n"


class StoreError(Exception):
    """Storage failure."""

    pass


class StoreConflictError(StoreError):
    """Object already exists."""

    pass


class ResourceStore(Protocol):
    """Source of desired-state objects."""

    async def get(self, name: str) -> KeycloakClientResource | None: ...

    async def list(self) -> list[KeycloakClientResource]: ...

    async def update(
        self, resource: KeycloakClientResource
    ) -> KeycloakClientResource | None:
        """Persist metadata changes.

        Returns None when the update released the last hold on an object
        marked for deletion, and the object was removed.
        """
        ...

    async def mark_deleted(self, name: str) -> None: ...

    async def invalid(self) -> dict[str, str]:
        """Entries that could not be loaded, mapped to the reason.

        Objects hidden this way are missing from list(), so callers must not
        treat their absence as deletion.
        """
        ...


class SecretStore(Protocol):
    """Destination of credential artifacts."""

    async def get(self, name: str) -> CredentialArtifact | None: ...

    async def list(self) -> list[CredentialArtifact]: ...

    async def create(self, artifact: CredentialArtifact) -> None: ...

    async def replace(self, artifact: CredentialArtifact) -> None: ...

    async def delete(self, name: str) -> None: ...


def _is_released(resource: KeycloakClientResource) -> bool:
    return resource.deletion_requested and not resource.metadata.finalizers


def _tombstone(resource: KeycloakClientResource) -> KeycloakClientResource:
    metadata = resource.metadata.model_copy(
        update={"deletion_timestamp": datetime.now(timezone.utc)}
    )
    return resource.model_copy(update={"metadata": metadata})


# -----------------------------------------------------------------------------
# In-memory
# -----------------------------------------------------------------------------


class InMemoryResourceStore:
    """Dict-backed resource store with declarative-store deletion semantics."""

    def __init__(self, resources: list[KeycloakClientResource] | None = None):
        self._items: dict[str, KeycloakClientResource] = {}
        self.updates: list[KeycloakClientResource] = []
        for resource in resources or []:
            self.add(resource)

    def add(self, resource: KeycloakClientResource) -> KeycloakClientResource:
        if not resource.uid:
            metadata = resource.metadata.model_copy(update={"uid": str(uuid.uuid4())})
            resource = resource.model_copy(update={"metadata": metadata})
        self._items[resource.name] = resource
        return resource

    async def get(self, name: str) -> KeycloakClientResource | None:
        return self._items.get(name)

    async def list(self) -> list[KeycloakClientResource]:
        return list(self._items.values())

    async def invalid(self) -> dict[str, str]:
        return {}

    async def update(
        self, resource: KeycloakClientResource
    ) -> KeycloakClientResource | None:
        if resource.name not in self._items:
            raise StoreError(f"{KIND} {resource.name!r} does not exist")
        self.updates.append(resource)
        if _is_released(resource):
            del self._items[resource.name]
            return None
        self._items[resource.name] = resource
        return resource

    async def mark_deleted(self, name: str) -> None:
        resource = self._items.get(name)
        if resource is None:
            raise StoreError(f"{KIND} {name!r} does not exist")
        if resource.deletion_requested:
            return
        resource = _tombstone(resource)
        if _is_released(resource):
            del self._items[name]
        else:
            self._items[name] = resource


class InMemorySecretStore:
    """Dict-backed credential artifact store."""

    def __init__(self):
        self._items: dict[str, CredentialArtifact] = {}

    async def get(self, name: str) -> CredentialArtifact | None:
        return self._items.get(name)

    async def list(self) -> list[CredentialArtifact]:
        return list(self._items.values())

    async def create(self, artifact: CredentialArtifact) -> None:
        if artifact.name in self._items:
            raise StoreConflictError(f"Secret {artifact.name!r} already exists")
        self._items[artifact.name] = artifact

    async def replace(self, artifact: CredentialArtifact) -> None:
        if artifact.name not in self._items:
            raise StoreError(f"Secret {artifact.name!r} does not exist")
        self._items[artifact.name] = artifact

    async def delete(self, name: str) -> None:
        self._items.pop(name, None)


# -----------------------------------------------------------------------------
# YAML directories
# -----------------------------------------------------------------------------


def _load_yaml(path: Path) -> dict:
    try:
        raw = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise StoreError(f"Failed to read {path}: {e}") from e
    if not isinstance(raw, dict):
        raise StoreError(f"File must be a YAML mapping: {path}")
    return raw


def _write_yaml(path: Path, data: dict, header: str = "") -> None:
    content = header + yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    try:
        path.write_text(content)
    except OSError as e:
        raise StoreError(f"Failed to write {path}: {e}") from e


class YamlResourceStore:
    """KeycloakClient manifests, one per *.yaml file in a directory.

    Objects without a uid get one assigned and written back on first read.
    Files of other kinds are skipped.
    """

    def __init__(self, directory: Path):
        self._dir = Path(directory)

    def _files(self) -> list[Path]:
        if not self._dir.exists():
            return []
        return sorted([*self._dir.glob("*.yaml"), *self._dir.glob("*.yml")])

    def _load(self, path: Path) -> KeycloakClientResource | None:
        raw = _load_yaml(path)
        if raw.get("kind", KIND) != KIND:
            logger.debug("Skipping %s: kind %s", path, raw.get("kind"))
            return None
        try:
            resource = KeycloakClientResource.model_validate(raw)
        except ValidationError as e:
            raise StoreError(f"Invalid {KIND} manifest {path}: {e}") from e

        if not resource.uid:
            metadata = resource.metadata.model_copy(update={"uid": str(uuid.uuid4())})
            resource = resource.model_copy(update={"metadata": metadata})
            _write_yaml(path, resource.to_manifest())
            logger.info("Assigned uid %s to %s", resource.uid, resource.name)
        return resource

    def _scan(
        self,
    ) -> tuple[dict[str, tuple[Path, KeycloakClientResource]], dict[str, str]]:
        """Load every manifest.

        Unreadable or invalid files are skipped and returned separately so
        the other objects can still be served. Duplicate names or uids make
        the whole directory ambiguous and raise.
        """
        found: dict[str, tuple[Path, KeycloakClientResource]] = {}
        uids: dict[str, Path] = {}
        invalid: dict[str, str] = {}
        for path in self._files():
            try:
                resource = self._load(path)
            except StoreError as e:
                logger.error("Skipping manifest %s: %s", path, e)
                invalid[path.name] = str(e)
                continue
            if resource is None:
                continue
            if resource.name in found:
                raise StoreError(
                    f"Duplicate {KIND} name {resource.name!r} in {found[resource.name][0]} and {path}"
                )
            if resource.uid in uids:
                raise StoreError(
                    f"Duplicate {KIND} uid {resource.uid!r} in {uids[resource.uid]} and {path}"
                )
            uids[resource.uid] = path
            found[resource.name] = (path, resource)
        return found, invalid

    async def get(self, name: str) -> KeycloakClientResource | None:
        entry = self._scan()[0].get(name)
        return entry[1] if entry else None

    async def list(self) -> list[KeycloakClientResource]:
        return [resource for _, resource in self._scan()[0].values()]

    async def invalid(self) -> dict[str, str]:
        return self._scan()[1]

    async def update(
        self, resource: KeycloakClientResource
    ) -> KeycloakClientResource | None:
        entry = self._scan()[0].get(resource.name)
        if entry is None:
            raise StoreError(f"{KIND} {resource.name!r} does not exist")
        path, current = entry
        if current.uid != resource.uid:
            raise StoreError(
                f"{KIND} {resource.name!r} was replaced (uid {current.uid} != {resource.uid})"
            )
        if _is_released(resource):
            path.unlink()
            logger.info("Removed manifest %s", path)
            return None
        _write_yaml(path, resource.to_manifest())
        return resource

    async def mark_deleted(self, name: str) -> None:
        entry = self._scan()[0].get(name)
        if entry is None:
            raise StoreError(f"{KIND} {name!r} does not exist")
        path, resource = entry
        if resource.deletion_requested:
            return
        resource = _tombstone(resource)
        if _is_released(resource):
            path.unlink()
            logger.info("Removed manifest %s", path)
            return
        _write_yaml(path, resource.to_manifest())


class YamlSecretStore:
    """Credential artifacts, one <name>.yaml file each, data base64 encoded."""

    def __init__(self, directory: Path):
        self._dir = Path(directory)

    def _path(self, name: str) -> Path:
        return self._dir / f"{name}.yaml"

    def _read(self, path: Path) -> CredentialArtifact:
        raw = _load_yaml(path)
        owner = raw.get("owner") or {}
        try:
            return CredentialArtifact(
                name=raw["name"],
                owner_name=owner.get("name", ""),
                owner_uid=owner.get("uid", ""),
                labels=raw.get("labels") or {},
                data={
                    key: base64.b64decode(value)
                    for key, value in (raw.get("data") or {}).items()
                },
                type=raw.get("type", "Opaque"),
                immutable=raw.get("immutable", True),
            )
        except (KeyError, ValueError, ValidationError) as e:
            raise StoreError(f"Invalid secret file {path}: {e}") from e

    def _write(self, artifact: CredentialArtifact) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        output = {
            "name": artifact.name,
            "type": artifact.type,
            "immutable": artifact.immutable,
            "owner": {"name": artifact.owner_name, "uid": artifact.owner_uid},
            "labels": dict(artifact.labels),
            "data": {
                key: base64.b64encode(value).decode("ascii")
                for key, value in artifact.data.items()
            },
        }
        _write_yaml(self._path(artifact.name), output, header=SECRETS_FILE_HEADER)

    async def get(self, name: str) -> CredentialArtifact | None:
        path = self._path(name)
        if not path.exists():
            return None
        return self._read(path)

    async def list(self) -> list[CredentialArtifact]:
        if not self._dir.exists():
            return []
        return [self._read(path) for path in sorted(self._dir.glob("*.yaml"))]

    async def create(self, artifact: CredentialArtifact) -> None:
        if self._path(artifact.name).exists():
            raise StoreConflictError(f"Secret {artifact.name!r} already exists")
        self._write(artifact)

    async def replace(self, artifact: CredentialArtifact) -> None:
        if not self._path(artifact.name).exists():
            raise StoreError(f"Secret {artifact.name!r} does not exist")
        self._write(artifact)

    async def delete(self, name: str) -> None:
        path = self._path(name)
        if path.exists():
            path.unlink()
            logger.info("Deleted secret file %s", path)
