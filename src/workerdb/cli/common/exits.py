"""Exit handling utilities for the CLI."""

from typing import NoReturn

import typer
from rich.markup import escape

from workerdb.cli.common.output import out
from workerdb.core.auth import ConfigurationError
from workerdb.core.gateway import SqlExecutionError

# Exit codes: 1 = the database or configuration refused, 2 = bad CLI input.
EXIT_FAILURE = 1
EXIT_USAGE = 2


def die(msg: str, code: int = EXIT_FAILURE) -> NoReturn:
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = 0) -> NoReturn:
    """Exit with a warning message and optional exit code."""
    out.warn(msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str | None = None, code: int | None = None) -> NoReturn:
    """
    Print a failure and exit, chaining the original exception.

    SQL failures surface the server's message and the failing statement
    verbatim; configuration problems exit before touching the database.
    """
    if code is None:
        code = EXIT_USAGE if isinstance(exc, ValueError) else EXIT_FAILURE
    if message is None:
        if isinstance(exc, ConfigurationError):
            message = f"Configuration error: {exc}"
        elif isinstance(exc, SqlExecutionError):
            message = f"{exc.cause}\n  statement: {' '.join(exc.statement.split())}"
        else:
            message = str(exc)
    out.error(escape(message))
    raise typer.Exit(code) from exc
