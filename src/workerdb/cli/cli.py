"""CLI application for per-worker database isolation."""

import typer

from workerdb.cli.commands import namespaces
from workerdb.cli.common.context import configure_logging
from workerdb.cli.common.options import VerboseOpt

app = typer.Typer(
    help="workerdb - per-worker database isolation for parallel E2E tests",
    no_args_is_help=True,
)


@app.callback()
def _init(verbose: bool = VerboseOpt):
    """Configure logging for every command."""
    configure_logging(verbose)


app.command(help="Show the isolation handle of a worker.")(namespaces.context)
app.command(help="Inspect worker namespaces.")(namespaces.status)
app.command(help="Provision or clear worker namespaces.")(namespaces.ensure)
app.command(help="Delete every row from one worker namespace.")(namespaces.clear)
app.command(help="Drop worker namespaces.")(namespaces.drop)


if __name__ == "__main__":
    app()
