"""ProvisionService — idempotent topic and credential provisioning.

Both operations are create-if-absent: running them again against an
already provisioned pipeline changes nothing.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

import structlog

from pipectl.domain.credentials import CredentialEntry
from pipectl.domain.topology import TopicSpec
from pipectl.infrastructure.config_file import ConfigResource, ConfigWriteError, split_table_path
from pipectl.infrastructure.kafka import TopicAdminError
from pipectl.services.base import BaseService
from pipectl.services.result import (
    CONFIG_WRITE_FAILED,
    PROVISION_FAILED,
    ServiceResult,
    failure,
)
from pipectl.services.telemetry import traced

log = structlog.get_logger(__name__)


class ProvisionService(BaseService):
    """Ensures Kafka topics and the API credential exist."""

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    @traced
    def ensure_topics(self, specs: Iterable[TopicSpec] | None = None) -> ServiceResult:
        """Create every topic in *specs* that does not exist yet.

        "Already exists" counts as success. Any other failure, including an
        unreachable broker, fails the operation; topics that did succeed are
        still listed in the error detail.
        """
        op = "ensure_topics"
        targets = (
            frozenset(specs) if specs is not None else self._runtime.topology.required_topics()
        )
        bootstrap = self.settings.kafka.bootstrap_servers
        try:
            outcome = self._runtime.topic_admin.create_topics(targets)
        except TopicAdminError as exc:
            return failure(
                op,
                PROVISION_FAILED,
                str(exc),
                remediation=(
                    f"Check the broker at {bootstrap} is up (`docker compose ps kafka`), "
                    "then re-run `pipectl provision`"
                ),
                bootstrap_servers=bootstrap,
            )

        data = {"created": sorted(outcome.created), "existing": sorted(outcome.existing)}
        if not outcome.ok:
            first = min(outcome.failures)
            return failure(
                op,
                PROVISION_FAILED,
                f"Topic {first!r} could not be created: {outcome.failures[first]}",
                remediation="Check broker logs (`docker compose logs kafka`) and re-run `pipectl provision`",
                failures=dict(sorted(outcome.failures.items())),
                **data,
            )

        log.info("topics.ensured", created=data["created"], existing=data["existing"])
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    def list_topics(self) -> ServiceResult:
        op = "list_topics"
        try:
            topics = self._runtime.topic_admin.list_topics()
        except TopicAdminError as exc:
            return failure(
                op,
                PROVISION_FAILED,
                str(exc),
                remediation="Check the broker is up: `docker compose ps kafka`",
            )
        required = self._runtime.topology.topic_names()
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "topics": sorted(topics),
                "missing": sorted(required - topics),
                "count": len(topics),
            },
        )

    # ------------------------------------------------------------------
    # Credential
    # ------------------------------------------------------------------

    def default_credential(self, key: str | None = None) -> CredentialEntry:
        """The credential described by the ``[credential]`` and ``[api]`` sections."""
        cfg = self.settings.credential
        return CredentialEntry(
            key=key or self.settings.api.api_key,
            tenant_id=UUID(cfg.tenant_id),
            user_id=UUID(cfg.user_id),
            display_name=cfg.name,
            active=cfg.is_active,
        )

    @traced
    def ensure_credential(
        self,
        entry: CredentialEntry | None = None,
        resource: ConfigResource | None = None,
        *,
        table_path: str | None = None,
    ) -> ServiceResult:
        """Insert *entry* into the config's key table unless its key is present.

        An existing key leaves the file byte-for-byte untouched. Otherwise the
        original is backed up first and replaced atomically.
        """
        op = "ensure_credential"
        entry = entry or self.default_credential()
        resource = resource or self._runtime.config_resource()
        table = table_path or self.settings.credential.table_path
        try:
            changed = resource.ensure_entry(
                split_table_path(table), entry.key, entry.as_config_value()
            )
        except ConfigWriteError as exc:
            return failure(
                op,
                CONFIG_WRITE_FAILED,
                str(exc),
                remediation=(
                    f"Fix {resource.path} by hand (any previous original is kept at "
                    f"{resource.backup_path}) and re-run `pipectl setup`"
                ),
                path=str(resource.path),
            )

        data: dict[str, object] = {
            "key": entry.masked_key,
            "path": str(resource.path),
            "table": table,
            "changed": changed,
        }
        if changed:
            data["backup"] = str(resource.backup_path)
            log.info("credential.added", key=entry.masked_key, path=str(resource.path))
        else:
            log.debug("credential.present", key=entry.masked_key, path=str(resource.path))
        return ServiceResult(ok=True, op=op, data=data)

    @traced
    def restore_config(self, resource: ConfigResource | None = None) -> ServiceResult:
        """Restore the config file from the backup taken before the last insert."""
        op = "restore_config"
        resource = resource or self._runtime.config_resource()
        try:
            resource.restore_backup()
        except ConfigWriteError as exc:
            return failure(op, CONFIG_WRITE_FAILED, str(exc), path=str(resource.path))
        return ServiceResult(
            ok=True,
            op=op,
            data={"path": str(resource.path), "restored_from": str(resource.backup_path)},
        )

    # ------------------------------------------------------------------
    # Combined
    # ------------------------------------------------------------------

    @traced
    def provision(self, *, credential: bool = True) -> ServiceResult:
        """Ensure the credential (optionally) and every required topic."""
        data: dict[str, object] = {}
        warnings: list[str] = []
        if credential:
            cred = self.ensure_credential()
            if not cred.ok:
                return cred
            data["credential"] = cred.data
            warnings.extend(cred.warnings)
        topics = self.ensure_topics()
        if not topics.ok:
            return topics
        return ServiceResult(
            ok=True,
            op="provision",
            data={**data, **topics.data},
            warnings=[*warnings, *topics.warnings],
        )
