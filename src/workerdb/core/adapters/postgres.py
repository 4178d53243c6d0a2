from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import psycopg
from psycopg.rows import class_row, dict_row

from workerdb.core.gateway import Params, SqlExecutionError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PostgresAdminAdapter:
    """Adapter around psycopg for privileged statements (DDL/DML/GRANT).

    Every call opens its own autocommit connection and closes it again, so
    no transaction or session state survives between calls.
    """

    def __init__(self, conninfo: str, *, connect_timeout: int | None = None) -> None:
        self.conninfo = conninfo
        self.connect_timeout = connect_timeout

    def _connect(self) -> psycopg.Connection:
        """Open a fresh autocommit connection."""
        kwargs: dict[str, Any] = {"autocommit": True}
        if self.connect_timeout is not None:
            kwargs["connect_timeout"] = self.connect_timeout
        return psycopg.connect(self.conninfo, **kwargs)

    def execute(self, statement: str, params: Params = None) -> None:
        """Run a statement that returns no rows."""
        logger.debug("execute: %s", " ".join(statement.split()))
        try:
            with self._connect() as conn:
                conn.execute(statement, params)
        except psycopg.Error as exc:
            raise SqlExecutionError(statement, exc) from exc

    def execute_with_result(
        self,
        query: str,
        params: Params = None,
        *,
        row_type: Callable[..., T] | None = None,
    ) -> list[Any]:
        """Run a query and return all rows.

        Rows are dicts keyed by column name, or `row_type(**columns)` when a
        row type is given.
        """
        logger.debug("query: %s", " ".join(query.split()))
        row_factory = class_row(row_type) if row_type is not None else dict_row
        try:
            with self._connect() as conn:
                with conn.cursor(row_factory=row_factory) as cur:
                    cur.execute(query, params)
                    if cur.description is None:
                        return []
                    return cur.fetchall()
        except psycopg.Error as exc:
            raise SqlExecutionError(query, exc) from exc
