from __future__ import annotations

import re
import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

_COUNT_RE = re.compile(r"'(\w+)' AS table_name, count\(\*\) AS row_count FROM (\w+)\.(\w+)")
_DEFAULT_SHAPE = [("id", "uuid", "NO"), ("name", "text", "YES")]


class FakeCatalog:
    """
    In-memory stand-in for the admin gateway.

    Records every statement and keeps just enough catalog state (schemas,
    tables, row counts, schema comments, column shapes, CHECK constraints)
    for the lifecycle functions to observe the effect of their own DDL.
    """

    def __init__(self, canonical_tables: list[str] | None = None):
        self.statements: list[str] = []
        self.params: list[object] = []
        self.schemas: dict[str, dict[str, int]] = {"public": {}}
        self.comments: dict[str, str] = {}
        self.shapes: dict[tuple[str, str], list[tuple[str, str, str]]] = {}
        self.checks: dict[tuple[str, str], list[str]] = {}
        self.fail_on: dict[str, BaseException] = {}
        for t in canonical_tables or []:
            self.schemas["public"][t] = 0

    # -- helpers for tests --------------------------------------------------

    def add_rows(self, schema: str, table: str, count: int) -> None:
        self.schemas[schema][table] += count

    def shape(self, schema: str, table: str) -> list[tuple[str, str, str]]:
        return self.shapes.get((schema, table), _DEFAULT_SHAPE)

    def _maybe_fail(self, statement: str) -> None:
        for needle, exc in self.fail_on.items():
            if needle in statement:
                raise exc

    # -- SqlGateway ---------------------------------------------------------

    def execute(self, statement: str, params=None) -> None:
        self.statements.append(statement)
        self.params.append(params)
        self._maybe_fail(statement)

        if m := re.match(r"CREATE SCHEMA IF NOT EXISTS (\w+)", statement):
            self.schemas.setdefault(m.group(1), {})
        elif m := re.match(r"DROP SCHEMA IF EXISTS (\w+) CASCADE", statement):
            self.schemas.pop(m.group(1), None)
            self.comments.pop(m.group(1), None)
        elif m := re.match(r"DROP TABLE IF EXISTS (\w+)\.(\w+)", statement):
            self.schemas.get(m.group(1), {}).pop(m.group(2), None)
            self.shapes.pop((m.group(1), m.group(2)), None)
            self.checks.pop((m.group(1), m.group(2)), None)
        elif m := re.match(r"CREATE TABLE (\w+)\.(\w+) \(LIKE (\w+)\.(\w+)", statement):
            self.schemas[m.group(1)][m.group(2)] = 0
            self.shapes[(m.group(1), m.group(2))] = list(self.shape(m.group(3), m.group(4)))
            self.checks[(m.group(1), m.group(2))] = list(self.checks.get((m.group(3), m.group(4)), []))
        elif m := re.match(r"COMMENT ON SCHEMA (\w+) IS '(.*)'", statement):
            self.comments[m.group(1)] = m.group(2)
        elif m := re.match(r"DELETE FROM (\w+)\.(\w+)$", statement):
            self.schemas[m.group(1)][m.group(2)] = 0

    def execute_with_result(self, query: str, params=None, *, row_type=None):
        self.statements.append(query)
        self.params.append(params)
        self._maybe_fail(query)

        if "information_schema.schemata WHERE schema_name = %s" in query:
            return [{"schema_name": params[0]}] if params[0] in self.schemas else []
        if "information_schema.schemata WHERE schema_name LIKE %s" in query:
            return [{"schema_name": s} for s in self.schemas if s.startswith("test_worker_")]
        if "FROM information_schema.tables" in query:
            schema, tracked = params
            return [
                {"table_name": t}
                for t in self.schemas.get(schema, {})
                if t in tracked
            ]
        if "obj_description" in query:
            return [{"marker": self.comments.get(params[0])}]
        if "FROM information_schema.columns" in query:
            schemas, tables = params
            return [
                {
                    "table_schema": s,
                    "table_name": t,
                    "column_name": col,
                    "data_type": typ,
                    "is_nullable": nullable,
                }
                for s in schemas
                for t in tables
                if t in self.schemas.get(s, {})
                for col, typ, nullable in self.shape(s, t)
            ]
        if "FROM pg_constraint" in query:
            schemas, tables = params
            return [
                {"table_schema": s, "table_name": t, "definition": d}
                for s in schemas
                for t in tables
                for d in sorted(self.checks.get((s, t), []))
            ]
        if "row_count" in query:
            return [
                {"table_name": label, "row_count": self.schemas[schema][table]}
                for label, schema, table in _COUNT_RE.findall(query)
            ]
        if "FROM auth.users" in query:
            return []
        raise AssertionError(f"unexpected query: {query}")


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        canonical_tables=[
            "profiles",
            "accounts",
            "projects",
            "expenses",
            "credit_cards",
            "user_preferences",
        ]
    )
