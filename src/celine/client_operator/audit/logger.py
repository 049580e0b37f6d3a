"""Structured audit logging for reconciliation outcomes."""

from contextlib import AbstractContextManager
from typing import Any

import logging
import structlog

from celine.client_operator.resources import KeycloakClientResource


def configure_audit_logging(
    *,
    log_level: str | int,
    json_format: bool,
) -> None:
    # Resolve log level via stdlib logging (NOT structlog)
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = int(log_level)

    logging.basicConfig(level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class ReconcileAuditLogger:
    """Audit trail of changes made to Keycloak and stored credentials."""

    def __init__(
        self,
        enabled: bool = True,
        logger: Any = None,
        service_name: str | None = None,
    ):
        self._enabled = enabled
        self._logger = logger or structlog.get_logger("audit")
        if service_name:
            # Inherited by the tasks started after this point
            structlog.contextvars.bind_contextvars(service=service_name)

    def bound(self, resource: KeycloakClientResource) -> AbstractContextManager:
        """Tag every structlog event emitted inside the block with the object."""
        return structlog.contextvars.bound_contextvars(
            resource=resource.name,
            realm=resource.spec.realm,
        )

    def _base(self, event: str, resource: KeycloakClientResource) -> dict[str, Any]:
        return {
            "event": event,
            "resource": resource.name,
            "uid": resource.uid,
            "realm": resource.spec.realm,
            "domain": resource.spec.domain,
        }

    def client_created(self, resource: KeycloakClientResource, client_uuid: str) -> None:
        if self._enabled:
            self._logger.info(**self._base("client_created", resource), client_uuid=client_uuid)

    def client_updated(
        self,
        resource: KeycloakClientResource,
        client_uuid: str,
        fields: list[str],
    ) -> None:
        """Log a drift correction.

        Args:
            resource: Desired-state object
            client_uuid: Keycloak id of the corrected client
            fields: Names of the fields that differed
        """
        if self._enabled:
            self._logger.info(
                **self._base("client_updated", resource),
                client_uuid=client_uuid,
                fields=fields,
            )

    def client_deleted(self, resource: KeycloakClientResource, client_uuid: str | None) -> None:
        if self._enabled:
            self._logger.info(
                **self._base("client_deleted", resource),
                client_uuid=client_uuid,
                already_absent=client_uuid is None,
            )

    def secret_synced(self, resource: KeycloakClientResource, secret_name: str) -> None:
        if self._enabled:
            self._logger.debug(**self._base("secret_synced", resource), secret=secret_name)

    def reconcile_failed(self, resource: KeycloakClientResource, error: Exception) -> None:
        if self._enabled:
            self._logger.error(
                **self._base("reconcile_failed", resource),
                error=str(error),
                error_type=type(error).__name__,
            )
