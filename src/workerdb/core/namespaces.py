"""Per-worker schema lifecycle: provision, clear, inspect and drop.

Each test worker owns one PostgreSQL schema ("namespace") holding an empty
clone of every table in the tracked-table manifest. The functions here are
safe to call from many worker processes at once: they are built from
idempotent primitives (`IF NOT EXISTS`, drop-then-recreate, `GRANT`), never
from check-then-act sequences guarded by a lock, and they never cache
catalog state between calls.

Failures are not swallowed. A `SqlExecutionError` aborts the operation and
the caller re-runs `ensure_namespace_ready`, which converges because every
statement it issues can be repeated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from workerdb.core.gateway import SqlExecutionError, SqlGateway
from workerdb.core.identifiers import identifier, qualified
from workerdb.core.manifest import (
    ForeignKey,
    ForeignKeyScope,
    TableManifest,
    TrackedTable,
    load_manifest,
)

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE_PREFIX = "test_worker_"

MARKER_PREFIX = "workerdb"

# SQLSTATE raised when two sessions race on CREATE SCHEMA IF NOT EXISTS.
UNIQUE_VIOLATION = "23505"


class NamespaceStatus(str, Enum):
    """Observed state of a worker namespace."""

    ABSENT = "absent"
    INCOMPLETE = "incomplete"
    DRIFTED = "drifted"
    PROVISIONED = "provisioned"
    DIRTY = "dirty"
    CLEARED = "cleared"


class EnsureAction(str, Enum):
    """What `ensure_namespace_ready` had to do."""

    CREATED = "created"
    CLEARED = "cleared"


@dataclass(frozen=True)
class GrantRoles:
    """Database roles that receive privileges on every worker namespace."""

    app_roles: tuple[str, ...] = ("authenticated", "service_role")
    read_only_roles: tuple[str, ...] = ("anon",)


@dataclass(frozen=True)
class NamespaceReport:
    """Result of inspecting one worker namespace."""

    name: str
    status: NamespaceStatus
    missing_tables: tuple[str, ...] = ()
    drifted_tables: tuple[str, ...] = ()
    row_counts: dict[str, int] = field(default_factory=dict)
    manifest_version: int | None = None

    @property
    def total_rows(self) -> int:
        return sum(self.row_counts.values())


_default_manifest: TableManifest | None = None


def _manifest_or_default(manifest: TableManifest | None) -> TableManifest:
    global _default_manifest
    if manifest is not None:
        return manifest
    if _default_manifest is None:
        _default_manifest = load_manifest()
    return _default_manifest


def namespace_name(worker_index: int, *, prefix: str = DEFAULT_NAMESPACE_PREFIX) -> str:
    """Return the schema name for a worker, e.g. `test_worker_3`."""
    if isinstance(worker_index, bool) or not isinstance(worker_index, int):
        raise ValueError(f"worker_index must be an int, got {worker_index!r}")
    if worker_index < 0:
        raise ValueError(f"worker_index must be >= 0, got {worker_index}")
    return identifier(f"{prefix}{worker_index}")


def worker_index_from_namespace(
    name: str, *, prefix: str = DEFAULT_NAMESPACE_PREFIX
) -> int | None:
    """Inverse of `namespace_name`; None when `name` is not a worker schema."""
    if not name.startswith(prefix):
        return None
    suffix = name[len(prefix):]
    if not suffix.isdigit() or str(int(suffix)) != suffix:
        return None
    return int(suffix)


def _schema_exists(gateway: SqlGateway, schema: str) -> bool:
    rows = gateway.execute_with_result(
        "SELECT schema_name FROM information_schema.schemata WHERE schema_name = %s",
        [schema],
    )
    return len(rows) > 0


def namespace_exists(
    gateway: SqlGateway, worker_index: int, *, prefix: str = DEFAULT_NAMESPACE_PREFIX
) -> bool:
    """Check the catalog for the worker's schema (never cached)."""
    return _schema_exists(gateway, namespace_name(worker_index, prefix=prefix))


def list_namespaces(
    gateway: SqlGateway, *, prefix: str = DEFAULT_NAMESPACE_PREFIX
) -> list[str]:
    """Return existing worker schema names ordered by worker index."""
    namespace_name(0, prefix=prefix)
    pattern = prefix.replace("\\", "\\\\").replace("_", "\\_").replace("%", "\\%")
    rows = gateway.execute_with_result(
        "SELECT schema_name FROM information_schema.schemata WHERE schema_name LIKE %s",
        [f"{pattern}%"],
    )
    indexed = [
        (idx, row["schema_name"])
        for row in rows
        for idx in [worker_index_from_namespace(row["schema_name"], prefix=prefix)]
        if idx is not None
    ]
    return [name for _, name in sorted(indexed)]


def _create_schema(gateway: SqlGateway, schema: str) -> None:
    """CREATE SCHEMA IF NOT EXISTS, tolerating a lost creation race."""
    try:
        gateway.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")
    except SqlExecutionError as exc:
        if exc.sqlstate != UNIQUE_VIOLATION or not _schema_exists(gateway, schema):
            raise
        logger.info("Schema %s was created concurrently by another worker", schema)


def _constraint_name(schema: str, table: str, column: str) -> str:
    return identifier(f"{schema}_{table}_{column}_fkey")


def _foreign_key_target(schema: str, fk: ForeignKey) -> str:
    if fk.scope is ForeignKeyScope.LOCAL:
        return f"{schema}.{identifier(fk.references_table)}"
    return qualified(fk.references_table)


def _clone_table(
    gateway: SqlGateway, schema: str, canonical_schema: str, table: TrackedTable
) -> None:
    """Drop any stale copy, clone the canonical table and rewire its foreign keys."""
    name = identifier(table.name)
    gateway.execute(f"DROP TABLE IF EXISTS {schema}.{name} CASCADE")
    gateway.execute(
        f"CREATE TABLE {schema}.{name} "
        f"(LIKE {canonical_schema}.{name} "
        "INCLUDING DEFAULTS INCLUDING CONSTRAINTS INCLUDING INDEXES)"
    )

    for fk in table.foreign_keys:
        constraint = _constraint_name(schema, name, fk.column)
        gateway.execute(
            f"ALTER TABLE {schema}.{name} DROP CONSTRAINT IF EXISTS {constraint}"
        )
        gateway.execute(
            f"ALTER TABLE {schema}.{name} ADD CONSTRAINT {constraint} "
            f"FOREIGN KEY ({identifier(fk.column)}) "
            f"REFERENCES {_foreign_key_target(schema, fk)}"
            f"({identifier(fk.references_column)}) "
            f"ON DELETE {fk.on_delete}"
        )


def _grant(gateway: SqlGateway, schema: str, roles: GrantRoles) -> None:
    for role in roles.app_roles:
        role = identifier(role)
        gateway.execute(f"GRANT USAGE ON SCHEMA {schema} TO {role}")
        gateway.execute(f"GRANT ALL ON ALL TABLES IN SCHEMA {schema} TO {role}")
        gateway.execute(f"GRANT ALL ON ALL SEQUENCES IN SCHEMA {schema} TO {role}")
    for role in roles.read_only_roles:
        role = identifier(role)
        gateway.execute(f"GRANT USAGE ON SCHEMA {schema} TO {role}")
        gateway.execute(f"GRANT SELECT ON ALL TABLES IN SCHEMA {schema} TO {role}")


def _write_marker(
    gateway: SqlGateway, schema: str, manifest: TableManifest, state: NamespaceStatus
) -> None:
    # COMMENT does not accept bind parameters; the marker text is generated here.
    gateway.execute(
        f"COMMENT ON SCHEMA {schema} IS "
        f"'{MARKER_PREFIX}:v{int(manifest.version)}:{state.value}'"
    )


def _parse_marker(comment: str | None) -> tuple[int | None, str | None]:
    """Split `workerdb:v<version>:<state>`; (None, None) for foreign comments."""
    if not comment:
        return None, None
    parts = comment.split(":")
    if len(parts) != 3 or parts[0] != MARKER_PREFIX or not parts[1].startswith("v"):
        return None, None
    try:
        return int(parts[1][1:]), parts[2]
    except ValueError:
        return None, None


def create_namespace(
    gateway: SqlGateway,
    worker_index: int,
    *,
    manifest: TableManifest | None = None,
    roles: GrantRoles | None = None,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> None:
    """
    Provision (or re-provision) the worker's namespace from scratch.

    Steps:
      1) create the schema if absent
      2) clone every tracked table in manifest order (drop stale copy first)
      3) point local foreign keys at the namespace's own parent tables
      4) keep shared foreign keys on their canonical targets
      5) grant privileges to the application and read-only roles
    """
    manifest = _manifest_or_default(manifest)
    roles = roles or GrantRoles()
    schema = namespace_name(worker_index, prefix=prefix)
    canonical = identifier(manifest.canonical_schema)

    logger.info("Provisioning namespace %s", schema)
    _create_schema(gateway, schema)
    for table in manifest.creation_order():
        _clone_table(gateway, schema, canonical, table)
    _grant(gateway, schema, roles)
    _write_marker(gateway, schema, manifest, NamespaceStatus.PROVISIONED)
    logger.info("Namespace %s provisioned (%d tables)", schema, len(manifest.tables))


def clear_namespace_data(
    gateway: SqlGateway,
    worker_index: int,
    *,
    manifest: TableManifest | None = None,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> None:
    """Delete every row from the namespace's tables, children first."""
    manifest = _manifest_or_default(manifest)
    schema = namespace_name(worker_index, prefix=prefix)

    for table in manifest.deletion_order():
        gateway.execute(f"DELETE FROM {schema}.{identifier(table.name)}")
    _write_marker(gateway, schema, manifest, NamespaceStatus.CLEARED)
    logger.info("Namespace %s cleared", schema)


def _column_shapes(
    gateway: SqlGateway, schemas: list[str], tables: list[str]
) -> dict[tuple[str, str], list[tuple[str, str, str]]]:
    rows = gateway.execute_with_result(
        "SELECT table_schema, table_name, column_name, data_type, is_nullable "
        "FROM information_schema.columns "
        "WHERE table_schema = ANY(%s) AND table_name = ANY(%s) "
        "ORDER BY table_schema, table_name, ordinal_position",
        [schemas, tables],
    )
    shapes: dict[tuple[str, str], list[tuple[str, str, str]]] = {}
    for row in rows:
        key = (row["table_schema"], row["table_name"])
        shapes.setdefault(key, []).append(
            (row["column_name"], row["data_type"], row["is_nullable"])
        )
    return shapes


def _check_constraints(
    gateway: SqlGateway, schemas: list[str], tables: list[str]
) -> dict[tuple[str, str], list[str]]:
    rows = gateway.execute_with_result(
        "SELECT n.nspname AS table_schema, c.relname AS table_name, "
        "pg_get_constraintdef(k.oid) AS definition "
        "FROM pg_constraint k "
        "JOIN pg_class c ON c.oid = k.conrelid "
        "JOIN pg_namespace n ON n.oid = c.relnamespace "
        "WHERE k.contype = 'c' AND n.nspname = ANY(%s) AND c.relname = ANY(%s) "
        "ORDER BY 1, 2, 3",
        [schemas, tables],
    )
    checks: dict[tuple[str, str], list[str]] = {}
    for row in rows:
        checks.setdefault((row["table_schema"], row["table_name"]), []).append(
            row["definition"]
        )
    return checks


def _row_counts(
    gateway: SqlGateway, schema: str, tables: Iterable[str]
) -> dict[str, int]:
    selects = [
        f"SELECT '{name}' AS table_name, count(*) AS row_count FROM {schema}.{name}"
        for name in (identifier(t) for t in tables)
    ]
    rows = gateway.execute_with_result(" UNION ALL ".join(selects))
    return {row["table_name"]: int(row["row_count"]) for row in rows}


def inspect_namespace(
    gateway: SqlGateway,
    worker_index: int,
    *,
    manifest: TableManifest | None = None,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> NamespaceReport:
    """
    Describe the namespace as the catalog currently sees it.

    A namespace is DRIFTED when a cloned table's columns (name, type,
    nullability) or CHECK constraints no longer match the canonical table, or
    when its marker is missing or names another manifest version. Column
    defaults and indexes are not compared; bump the manifest version to force
    a re-clone after changing them.
    """
    manifest = _manifest_or_default(manifest)
    schema = namespace_name(worker_index, prefix=prefix)
    canonical = identifier(manifest.canonical_schema)
    tracked = manifest.table_names

    if not _schema_exists(gateway, schema):
        return NamespaceReport(name=schema, status=NamespaceStatus.ABSENT)

    present_rows = gateway.execute_with_result(
        "SELECT table_name FROM information_schema.tables "
        "WHERE table_schema = %s AND table_name = ANY(%s)",
        [schema, tracked],
    )
    present = {row["table_name"] for row in present_rows}
    missing = tuple(t for t in tracked if t not in present)

    marker_rows = gateway.execute_with_result(
        "SELECT obj_description(oid, 'pg_namespace') AS marker "
        "FROM pg_namespace WHERE nspname = %s",
        [schema],
    )
    version, state = _parse_marker(marker_rows[0]["marker"] if marker_rows else None)

    if missing:
        return NamespaceReport(
            name=schema,
            status=NamespaceStatus.INCOMPLETE,
            missing_tables=missing,
            manifest_version=version,
        )

    shapes = _column_shapes(gateway, [canonical, schema], tracked)
    checks = _check_constraints(gateway, [canonical, schema], tracked)
    drifted = tuple(
        t
        for t in tracked
        if shapes.get((canonical, t)) != shapes.get((schema, t))
        or checks.get((canonical, t), []) != checks.get((schema, t), [])
    )
    counts = _row_counts(gateway, schema, tracked)

    if drifted or version != manifest.version:
        status = NamespaceStatus.DRIFTED
    elif sum(counts.values()) > 0:
        status = NamespaceStatus.DIRTY
    elif state == NamespaceStatus.PROVISIONED.value:
        status = NamespaceStatus.PROVISIONED
    else:
        status = NamespaceStatus.CLEARED

    return NamespaceReport(
        name=schema,
        status=status,
        drifted_tables=drifted,
        row_counts=counts,
        manifest_version=version,
    )


def ensure_namespace_ready(
    gateway: SqlGateway,
    worker_index: int,
    *,
    manifest: TableManifest | None = None,
    roles: GrantRoles | None = None,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> EnsureAction:
    """
    Make the worker's namespace exist, complete and empty.

    Complete namespaces are cleared; absent, incomplete or drifted ones are
    provisioned from scratch. Safe to repeat after a failure or a timeout.
    """
    manifest = _manifest_or_default(manifest)
    report = inspect_namespace(gateway, worker_index, manifest=manifest, prefix=prefix)

    if report.status in (
        NamespaceStatus.ABSENT,
        NamespaceStatus.INCOMPLETE,
        NamespaceStatus.DRIFTED,
    ):
        if report.status is not NamespaceStatus.ABSENT:
            logger.warning(
                "Namespace %s is %s (missing=%s drifted=%s); re-provisioning",
                report.name,
                report.status.value,
                ",".join(report.missing_tables) or "-",
                ",".join(report.drifted_tables) or "-",
            )
        create_namespace(
            gateway, worker_index, manifest=manifest, roles=roles, prefix=prefix
        )
        return EnsureAction.CREATED

    clear_namespace_data(gateway, worker_index, manifest=manifest, prefix=prefix)
    return EnsureAction.CLEARED


def initialize_all_namespaces(
    gateway: SqlGateway,
    worker_count: int,
    *,
    manifest: TableManifest | None = None,
    roles: GrantRoles | None = None,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> None:
    """Provision namespaces for workers [0, worker_count) (global setup)."""
    if worker_count < 0:
        raise ValueError("worker_count must be >= 0")
    for idx in range(worker_count):
        create_namespace(gateway, idx, manifest=manifest, roles=roles, prefix=prefix)


def drop_namespace(
    gateway: SqlGateway, worker_index: int, *, prefix: str = DEFAULT_NAMESPACE_PREFIX
) -> None:
    """Drop the worker's schema and everything in it."""
    schema = namespace_name(worker_index, prefix=prefix)
    gateway.execute(f"DROP SCHEMA IF EXISTS {schema} CASCADE")
    logger.info("Namespace %s dropped", schema)


def drop_all_namespaces(
    gateway: SqlGateway, max_workers: int, *, prefix: str = DEFAULT_NAMESPACE_PREFIX
) -> None:
    """Drop namespaces for workers [0, max_workers) (suite teardown)."""
    if max_workers < 0:
        raise ValueError("max_workers must be >= 0")
    for idx in range(max_workers):
        drop_namespace(gateway, idx, prefix=prefix)
