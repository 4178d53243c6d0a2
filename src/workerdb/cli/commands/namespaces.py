"""Commands for managing per-worker namespaces."""

import typer

from workerdb.cli.common.context import AppContext, build_context
from workerdb.cli.common.exits import EXIT_FAILURE, die, exit_from_exc, warn_exit
from workerdb.cli.common.options import (
    AllOpt,
    DryRunOpt,
    ParallelOpt,
    ProjectOpt,
    WorkerIndexArg,
    WorkersOpt,
    YesOpt,
)
from workerdb.cli.common.output import out
from workerdb.cli.common.progress import run_with_progress
from workerdb.cli.tui import select_namespaces
from workerdb.core.bulk import drop_namespaces, ensure_namespaces_parallel
from workerdb.core.gateway import SqlExecutionError
from workerdb.core.namespaces import (
    clear_namespace_data,
    ensure_namespace_ready,
    inspect_namespace,
    list_namespaces,
    namespace_name,
    worker_index_from_namespace,
)
from workerdb.core.workers import MAX_WORKERS, allocate, worker_index_from_env


def _resolve_index(index: int | None) -> int:
    if index is not None:
        return index
    try:
        return worker_index_from_env()
    except ValueError as e:
        exit_from_exc(e)


def context(
    index: int | None = WorkerIndexArg,
    project: str | None = ProjectOpt,
    workers: int | None = WorkersOpt,
):
    """
    Show the isolation handle of a worker (no database access).
    """
    try:
        worker = allocate(
            _resolve_index(index),
            max_workers=workers or MAX_WORKERS,
            project=project,
        )
    except ValueError as e:
        exit_from_exc(e)

    out.context_table(worker)


def status(workers: int | None = WorkersOpt):
    """
    Inspect every worker namespace in [0, --workers).
    """
    appctx: AppContext = build_context()
    count = appctx.worker_count(workers)

    try:
        with out.status("Inspecting namespaces..."):
            reports = [
                inspect_namespace(appctx.gateway, idx, manifest=appctx.manifest)
                for idx in range(count)
            ]
    except SqlExecutionError as e:
        exit_from_exc(e)

    out.namespace_reports_table(reports)


def ensure(
    index: int | None = WorkerIndexArg,
    all_workers: bool = AllOpt,
    workers: int | None = WorkersOpt,
    parallel: int = ParallelOpt,
):
    """
    Make namespaces exist, match the canonical tables and hold no rows.
    """
    if all_workers and index is not None:
        die("Pass either INDEX or --all, not both", code=2)

    appctx: AppContext = build_context()

    if not all_workers:
        idx = _resolve_index(index)
        try:
            with out.status(f"Ensuring {namespace_name(idx)}..."):
                action = ensure_namespace_ready(
                    appctx.gateway,
                    idx,
                    manifest=appctx.manifest,
                    roles=appctx.config.roles,
                )
        except (SqlExecutionError, ValueError) as e:
            exit_from_exc(e)
        out.success(f"{namespace_name(idx)}: {action.value}")
        return

    if parallel < 1:
        die("--parallel must be >= 1", code=2)

    indexes = list(range(appctx.worker_count(workers)))
    if not indexes:
        warn_exit("No workers to ensure", code=0)

    results = run_with_progress(
        {idx: namespace_name(idx) for idx in indexes},
        lambda on_update: ensure_namespaces_parallel(
            appctx.gateway,
            indexes,
            parallel,
            manifest=appctx.manifest,
            roles=appctx.config.roles,
            on_update=on_update,
        ),
    )

    out.namespace_results_table(results, title="Ensured namespaces")

    failed = [r for r in results if not r.ok]
    if failed:
        die(f"{len(failed)} of {len(results)} namespace(s) failed", code=EXIT_FAILURE)
    out.success(f"{len(results)} namespace(s) ready")


def clear(index: int = typer.Argument(..., help="Worker index")):
    """
    Delete every row from one worker namespace.
    """
    appctx: AppContext = build_context()
    try:
        clear_namespace_data(appctx.gateway, index, manifest=appctx.manifest)
    except (SqlExecutionError, ValueError) as e:
        exit_from_exc(e)
    out.success(f"{namespace_name(index)} cleared")


def _pick_existing(appctx: AppContext) -> list[int]:
    with out.status("Loading namespaces..."):
        names = list_namespaces(appctx.gateway)
        reports = [
            inspect_namespace(
                appctx.gateway,
                worker_index_from_namespace(name),
                manifest=appctx.manifest,
            )
            for name in names
        ]

    if not reports:
        warn_exit("No worker namespaces found", code=0)

    selected = select_namespaces(reports)
    return [worker_index_from_namespace(r.name) for r in selected]


def drop(
    index: int | None = WorkerIndexArg,
    all_workers: bool = AllOpt,
    workers: int | None = WorkersOpt,
    dry_run: bool = DryRunOpt,
    yes: bool = YesOpt,
):
    """
    Drop worker namespaces and everything in them.
    """
    if all_workers and index is not None:
        die("Pass either INDEX or --all, not both", code=2)

    appctx: AppContext = build_context()

    try:
        if all_workers:
            indexes = list(range(appctx.teardown_count(workers)))
        elif index is not None:
            namespace_name(index)
            indexes = [index]
        else:
            indexes = _pick_existing(appctx)
    except (SqlExecutionError, ValueError) as e:
        exit_from_exc(e)

    if not indexes:
        warn_exit("No namespaces selected", code=0)

    out.header("Namespaces to drop")
    out.namespaces_table([namespace_name(idx) for idx in indexes], title="Selected")

    if dry_run:
        results = drop_namespaces(appctx.gateway, indexes, dry_run=True)
        out.namespace_results_table(results)
        warn_exit("Dry-run enabled: no namespaces were dropped", code=0)

    if not yes and not out.confirm(f"Drop {len(indexes)} namespace(s)?"):
        warn_exit("Cancelled", code=0)

    with out.status("Dropping namespaces..."):
        results = drop_namespaces(appctx.gateway, indexes)

    out.namespace_results_table(results, title="Dropped namespaces")

    if any(not r.ok for r in results):
        raise typer.Exit(EXIT_FAILURE)
    out.success(f"{len(results)} namespace(s) dropped")
