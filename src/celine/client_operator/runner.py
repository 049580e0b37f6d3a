"""Polling driver for the reconciler.

Delivers every KeycloakClient to the reconciler on each tick, different
objects concurrently, and removes credential artifacts whose owner is gone.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from celine.client_operator.reconciler import ClientReconciler, ReconcileResult
from celine.client_operator.store import ResourceStore, SecretStore

logger = logging.getLogger(__name__)


@dataclass
class PassReport:
    """Result of reconciling every known object once."""

    results: dict[str, ReconcileResult] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    secrets_collected: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if every object reconciled without errors."""
        return len(self.errors) == 0

    def next_delay(self, default: float) -> float:
        delays = [r.requeue_after for r in self.results.values() if r.requeue_after]
        return min(delays, default=default)

    def summary(self) -> str:
        """Get a human-readable summary of the pass."""
        lines = []

        for name, result in sorted(self.results.items()):
            if result.deleted:
                lines.append(f"  - {name} (deleted)")
            elif result.created:
                lines.append(f"  + {name} ({result.client_uuid})")
            elif result.updated:
                lines.append(f"  ~ {name} ({result.client_uuid})")
            elif result.client_uuid:
                lines.append(f"  = {name} ({result.client_uuid})")

        for secret in self.secrets_collected:
            lines.append(f"  - secret {secret} (owner gone)")

        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
            for name, err in sorted(self.errors.items()):
                lines.append(f"  ! {name}: {err}")

        if not lines:
            lines.append("Nothing to reconcile")

        return "\n".join(lines)


class Operator:
    """Runs reconciliation passes over all objects of a resource store."""

    def __init__(
        self,
        reconciler: ClientReconciler,
        resources: ResourceStore,
        secrets: SecretStore,
        poll_interval: float = 60.0,
        concurrency: int = 4,
    ):
        self._reconciler = reconciler
        self._resources = resources
        self._secrets = secrets
        self._poll_interval = poll_interval
        self._semaphore = asyncio.Semaphore(concurrency)

    async def _reconcile_one(self, name: str, report: PassReport) -> None:
        async with self._semaphore:
            try:
                report.results[name] = await self._reconciler.reconcile(name)
            except Exception as e:
                # Retried on the next pass
                report.errors[name] = str(e)

    async def run_once(self, names: list[str] | None = None) -> PassReport:
        """Reconcile the given objects (all by default) once."""
        report = PassReport()
        if names is None:
            names = [resource.name for resource in await self._resources.list()]

        await asyncio.gather(*(self._reconcile_one(name, report) for name in names))

        invalid = await self._resources.invalid()
        report.errors.update(invalid)
        if invalid:
            # An unreadable manifest still owns its secret
            logger.warning(
                "Skipping secret cleanup, %d manifest(s) could not be loaded", len(invalid)
            )
        else:
            report.secrets_collected = await self.collect_garbage()
        return report

    async def collect_garbage(self) -> list[str]:
        """Delete credential artifacts whose owning object no longer exists."""
        live = {resource.uid for resource in await self._resources.list()}
        collected = []
        for artifact in await self._secrets.list():
            if artifact.owner_uid and artifact.owner_uid not in live:
                await self._secrets.delete(artifact.name)
                collected.append(artifact.name)
                logger.info("Deleted secret %s of removed %s", artifact.name, artifact.owner_name)
        return collected

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """Reconcile everything, wait for the requeue delay, repeat."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                report = await self.run_once()
            except Exception as e:
                logger.error("Reconcile pass failed, retrying in %.1fs: %s", self._poll_interval, e)
                delay = self._poll_interval
            else:
                for name, err in report.errors.items():
                    logger.warning("Reconcile of %s will be retried: %s", name, err)
                delay = report.next_delay(self._poll_interval)

            logger.debug("Next pass in %.1fs", delay)
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
