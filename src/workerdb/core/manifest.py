"""Tracked-table manifest: which tables every worker namespace carries.

The manifest is a versioned JSON artifact listing the tables to clone, in
dependency order (parents before children), together with the foreign keys
that must be rewired after cloning. A foreign key is either *local* (it
points at the namespace's own copy of a tracked parent table) or *shared*
(it keeps pointing at a namespace-independent table such as `auth.users`).

Adding a tracked table is a change to the JSON file, not to the code.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from workerdb.core.identifiers import identifier, is_qualified, qualified

DEFAULT_MANIFEST_PATH = Path(__file__).resolve().parent / "data" / "tracked_tables.json"

_ON_DELETE_ACTIONS = frozenset({"CASCADE", "SET NULL", "RESTRICT", "NO ACTION"})


class ManifestError(ValueError):
    """Raised when a tracked-table manifest is malformed."""


class TagMatch(str, Enum):
    """How the row-tagging strategy recognises a worker's rows."""

    PREFIX = "prefix"
    EMAIL = "email"


class ForeignKeyScope(str, Enum):
    """Where a cloned foreign key points after provisioning."""

    LOCAL = "local"
    SHARED = "shared"


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key to (re)create on a cloned table."""

    column: str
    references_table: str
    references_column: str = "id"
    on_delete: str = "SET NULL"
    scope: ForeignKeyScope = ForeignKeyScope.LOCAL


@dataclass(frozen=True)
class TrackedTable:
    """One table cloned into every worker namespace."""

    name: str
    foreign_keys: tuple[ForeignKey, ...] = ()
    tag_column: str | None = None
    tag_match: TagMatch = TagMatch.PREFIX

    @property
    def local_parents(self) -> tuple[str, ...]:
        return tuple(
            fk.references_table
            for fk in self.foreign_keys
            if fk.scope is ForeignKeyScope.LOCAL
        )


@dataclass(frozen=True)
class TableManifest:
    """Ordered set of tracked tables plus the canonical schema they mirror."""

    version: int
    canonical_schema: str
    tables: tuple[TrackedTable, ...]

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def creation_order(self) -> list[TrackedTable]:
        """Tables in declared order (parents before children)."""
        return list(self.tables)

    def deletion_order(self) -> list[TrackedTable]:
        """Tables in reverse declared order (children before parents)."""
        return list(reversed(self.tables))

    def validate(self) -> "TableManifest":
        """Check names, references and ordering; return self when valid."""
        try:
            identifier(self.canonical_schema)
        except ValueError as exc:
            raise ManifestError(str(exc)) from exc

        if not self.tables:
            raise ManifestError("Manifest must track at least one table.")

        seen: set[str] = set()
        for table in self.tables:
            try:
                identifier(table.name)
                if table.tag_column:
                    identifier(table.tag_column)
            except ValueError as exc:
                raise ManifestError(str(exc)) from exc

            if table.name in seen:
                raise ManifestError(f"Table '{table.name}' is tracked twice.")

            for fk in table.foreign_keys:
                _validate_foreign_key(table.name, fk, seen)

            seen.add(table.name)
        return self


def _validate_foreign_key(table: str, fk: ForeignKey, declared: set[str]) -> None:
    """Validate one foreign key of `table` against tables declared so far."""
    try:
        identifier(fk.column)
        identifier(fk.references_column)
        qualified(fk.references_table)
    except ValueError as exc:
        raise ManifestError(f"{table}: {exc}") from exc

    if fk.on_delete not in _ON_DELETE_ACTIONS:
        raise ManifestError(
            f"{table}.{fk.column}: unsupported on_delete '{fk.on_delete}'."
        )

    if fk.scope is ForeignKeyScope.LOCAL:
        if is_qualified(fk.references_table):
            raise ManifestError(
                f"{table}.{fk.column}: local foreign keys must name a tracked "
                f"table, not '{fk.references_table}'."
            )
        if fk.references_table not in declared:
            raise ManifestError(
                f"{table}.{fk.column}: parent '{fk.references_table}' must be "
                "tracked and declared before its children."
            )
    elif not is_qualified(fk.references_table):
        raise ManifestError(
            f"{table}.{fk.column}: shared foreign keys must use a "
            f"schema-qualified target, got '{fk.references_table}'."
        )


def _foreign_key_from_dict(raw: Mapping[str, Any]) -> ForeignKey:
    try:
        scope = ForeignKeyScope(raw.get("scope", ForeignKeyScope.LOCAL.value))
    except ValueError as exc:
        raise ManifestError(f"Unknown foreign key scope: {raw.get('scope')!r}") from exc
    try:
        return ForeignKey(
            column=str(raw["column"]),
            references_table=str(raw["references_table"]),
            references_column=str(raw.get("references_column", "id")),
            on_delete=str(raw.get("on_delete", "SET NULL")).upper(),
            scope=scope,
        )
    except KeyError as exc:
        raise ManifestError(f"Foreign key is missing field {exc}.") from exc


def _tag_match(raw: Any) -> TagMatch:
    try:
        return TagMatch(raw or TagMatch.PREFIX.value)
    except ValueError as exc:
        raise ManifestError(f"Unknown tag_match: {raw!r}") from exc


def manifest_from_dict(payload: Mapping[str, Any]) -> TableManifest:
    """Build and validate a manifest from its decoded JSON form."""
    try:
        version = int(payload["version"])
        raw_tables = payload["tables"]
    except (KeyError, TypeError, ValueError) as exc:
        raise ManifestError(f"Manifest needs an integer 'version' and 'tables': {exc}") from exc

    tables: list[TrackedTable] = []
    for item in raw_tables:
        if "name" not in item:
            raise ManifestError("Every tracked table needs a 'name'.")
        tables.append(
            TrackedTable(
                name=str(item["name"]),
                foreign_keys=tuple(
                    _foreign_key_from_dict(fk) for fk in item.get("foreign_keys", [])
                ),
                tag_column=item.get("tag_column"),
                tag_match=_tag_match(item.get("tag_match")),
            )
        )

    return TableManifest(
        version=version,
        canonical_schema=str(payload.get("canonical_schema", "public")),
        tables=tuple(tables),
    ).validate()


def load_manifest(path: str | Path | None = None) -> TableManifest:
    """Load a manifest from `path`, or the packaged default when omitted."""
    source = Path(path) if path else DEFAULT_MANIFEST_PATH
    try:
        payload = json.loads(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ManifestError(f"Cannot read manifest {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest {source} is not valid JSON: {exc}") from exc
    return manifest_from_dict(payload)
