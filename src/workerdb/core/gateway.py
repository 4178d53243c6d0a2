"""Privileged SQL execution seam used by the isolation layer.

The lifecycle and isolation code never talks to a database driver directly.
Everything goes through an object satisfying ``SqlGateway``; the production
implementation lives in ``workerdb.core.adapters.postgres`` and tests use
small recording stubs.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence, TypeVar

from workerdb.core.identifiers import qualified

logger = logging.getLogger(__name__)

T = TypeVar("T")

Params = Sequence[Any] | None


class SqlExecutionError(RuntimeError):
    """Raised when a statement fails on the database side."""

    def __init__(self, statement: str, cause: BaseException):
        self.statement = statement
        self.cause = cause
        self.sqlstate: str | None = getattr(cause, "sqlstate", None)
        first_line = " ".join(statement.split())
        super().__init__(f"SQL failed: {cause} [statement: {first_line}]")


class AmbiguousResultError(RuntimeError):
    """Raised when a lookup that must be unique matched several rows."""


class SqlGateway(Protocol):
    """Interface for privileged statement execution."""

    def execute(self, statement: str, params: Params = None) -> None:
        """Run a statement that returns no rows (DDL, DELETE, GRANT)."""
        ...

    def execute_with_result(
        self,
        query: str,
        params: Params = None,
        *,
        row_type: Callable[..., T] | None = None,
    ) -> list[Any]:
        """Run a query and return all rows (dicts, or `row_type` instances)."""
        ...


def lookup_identity_by_email(
    gateway: SqlGateway,
    email: str,
    *,
    identity_table: str = "auth.users",
) -> str | None:
    """
    Resolve the identity id registered for an email address.

    Returns None when no identity matches. Two or more matches mean the
    identity table is not unique on email, which is treated as a defect.
    """
    rows = gateway.execute_with_result(
        f"SELECT id FROM {qualified(identity_table)} WHERE email = %s LIMIT 2",
        [email],
    )
    if not rows:
        logger.debug("No identity found for %s", email)
        return None
    if len(rows) > 1:
        raise AmbiguousResultError(
            f"Expected at most one identity for {email!r} in {identity_table}, "
            f"got {len(rows)}."
        )
    return str(rows[0]["id"])
