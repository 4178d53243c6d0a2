"""Common CLI options for the CLI."""

import typer

WorkerIndexArg = typer.Argument(
    None,
    help="Worker index (defaults to the current process's worker, usually 0)",
    show_default=False,
)

AllOpt = typer.Option(
    False,
    "--all",
    help="Apply to every worker in [0, --workers)",
)

WorkersOpt = typer.Option(
    None,
    "--workers",
    "-w",
    help="Number of workers (default: WORKERDB_WORKERS, else sized from CPUs; drop --all uses WORKERDB_MAX_WORKERS)",
    show_default=False,
)

ParallelOpt = typer.Option(
    4,
    "--parallel",
    "-n",
    help="Number of namespaces provisioned in parallel",
)

ProjectOpt = typer.Option(
    None,
    "--project",
    help="Test project name used in the worker email (default: chromium)",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show what would change, but do nothing",
)

YesOpt = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt")

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log every SQL statement",
)
