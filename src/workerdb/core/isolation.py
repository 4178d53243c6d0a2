"""Interchangeable worker-isolation strategies.

Two ways of keeping parallel workers apart are supported behind one
interface:

- `SchemaIsolation`: every worker gets its own cloned schema (namespace).
- `RowTagIsolation`: all workers share the canonical tables and each one
  only touches rows tagged with its worker prefix (or worker email), with
  the application's access-control policy doing the rest.

A deployment normally needs only one of them; `build_isolation` picks it
by name.
"""

from __future__ import annotations

import logging
from typing import Protocol

from workerdb.core.auth import ConfigurationError
from workerdb.core.gateway import SqlGateway
from workerdb.core.identifiers import identifier
from workerdb.core.manifest import TableManifest, TagMatch, load_manifest
from workerdb.core.namespaces import (
    DEFAULT_NAMESPACE_PREFIX,
    EnsureAction,
    GrantRoles,
    clear_namespace_data,
    drop_namespace,
    ensure_namespace_ready,
)
from workerdb.core.workers import (
    WorkerContext,
    worker_email_pattern,
    worker_prefix_pattern,
)

logger = logging.getLogger(__name__)

STRATEGIES = ("schema", "tag")


class WorkerIsolation(Protocol):
    """Lifecycle hooks a test harness calls for its worker."""

    def prepare(self, context: WorkerContext) -> None:
        """Make the worker's data area ready and empty (once per session)."""
        ...

    def reset(self, context: WorkerContext) -> None:
        """Remove the worker's data between tests."""
        ...

    def teardown(self, context: WorkerContext) -> None:
        """Remove the worker's data area at suite teardown."""
        ...


class SchemaIsolation:
    """Isolation through one cloned schema per worker."""

    def __init__(
        self,
        gateway: SqlGateway,
        manifest: TableManifest | None = None,
        roles: GrantRoles | None = None,
        prefix: str = DEFAULT_NAMESPACE_PREFIX,
    ) -> None:
        self.gateway = gateway
        self.manifest = manifest or load_manifest()
        self.roles = roles or GrantRoles()
        self.prefix = prefix
        self.last_action: EnsureAction | None = None

    def prepare(self, context: WorkerContext) -> None:
        self.last_action = ensure_namespace_ready(
            self.gateway,
            context.worker_index,
            manifest=self.manifest,
            roles=self.roles,
            prefix=self.prefix,
        )

    def reset(self, context: WorkerContext) -> None:
        clear_namespace_data(
            self.gateway,
            context.worker_index,
            manifest=self.manifest,
            prefix=self.prefix,
        )

    def teardown(self, context: WorkerContext) -> None:
        drop_namespace(self.gateway, context.worker_index, prefix=self.prefix)


class RowTagIsolation:
    """Isolation by deleting only the rows tagged for this worker."""

    def __init__(self, gateway: SqlGateway, manifest: TableManifest | None = None) -> None:
        self.gateway = gateway
        self.manifest = manifest or load_manifest()

    def _delete_tagged_rows(self, context: WorkerContext) -> None:
        schema = identifier(self.manifest.canonical_schema)
        for table in self.manifest.deletion_order():
            if not table.tag_column:
                continue
            pattern = (
                worker_email_pattern(context.worker_index)
                if table.tag_match is TagMatch.EMAIL
                else worker_prefix_pattern(context.worker_index)
            )
            self.gateway.execute(
                f"DELETE FROM {schema}.{identifier(table.name)} "
                f"WHERE {identifier(table.tag_column)} LIKE %s",
                [pattern],
            )
        logger.info("Removed tagged rows for worker %d", context.worker_index)

    def prepare(self, context: WorkerContext) -> None:
        self._delete_tagged_rows(context)

    def reset(self, context: WorkerContext) -> None:
        self._delete_tagged_rows(context)

    def teardown(self, context: WorkerContext) -> None:
        self._delete_tagged_rows(context)


def build_isolation(
    strategy: str,
    gateway: SqlGateway,
    *,
    manifest: TableManifest | None = None,
    roles: GrantRoles | None = None,
) -> WorkerIsolation:
    """Return the isolation strategy registered under `strategy`."""
    key = (strategy or "").strip().lower()
    if key == "schema":
        return SchemaIsolation(gateway, manifest=manifest, roles=roles)
    if key == "tag":
        return RowTagIsolation(gateway, manifest=manifest)
    raise ConfigurationError(
        f"Unknown isolation strategy '{strategy}'. Expected one of: {', '.join(STRATEGIES)}."
    )
