"""Live progress display for bulk namespace provisioning."""

from __future__ import annotations

import threading
from typing import Callable

from rich.console import Group
from rich.live import Live
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from workerdb.cli.common.output import console
from workerdb.core.bulk import NamespaceResult, ProgressCallback

_TERMINAL_STATES = {"created", "cleared", "failed"}


def style_for(state: str) -> str:
    """Rich style for a namespace state reported by the bulk runner."""
    if state in ("created", "cleared"):
        return "green"
    if state == "failed":
        return "red"
    if state == "running":
        return "yellow"
    return "dim"


def run_with_progress(
    namespaces: dict[int, str],
    work: Callable[[ProgressCallback], list[NamespaceResult]],
) -> list[NamespaceResult]:
    """
    Run `work` while showing:
      - an overall progress bar (x/y namespaces done + failures)
      - one spinner row per namespace with its current state

    `namespaces` maps worker index to namespace name. `work` receives the
    callback it must call with (worker_index, state) updates.
    """
    overall = Progress(
        TextColumn("[bold]Overall[/]"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("failures=[bold red]{task.fields[failures]}[/]"),
        TimeElapsedColumn(),
        console=console,
    )
    per_namespace = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.fields[namespace]}[/]"),
        TextColumn(
            "state=[{task.fields[style]}]{task.fields[state]}[/{task.fields[style]}]"
        ),
        TimeElapsedColumn(),
        console=console,
    )

    overall_task = overall.add_task("overall", total=max(len(namespaces), 1), failures=0)
    name_width = max((len(n) for n in namespaces.values()), default=0)
    task_ids = {
        idx: per_namespace.add_task(
            "",
            total=1,
            namespace=name.ljust(name_width),
            state="pending",
            style=style_for("pending"),
        )
        for idx, name in namespaces.items()
    }
    failures = 0
    lock = threading.Lock()

    def _on_update(idx: int, state: str) -> None:
        nonlocal failures
        task_id = task_ids.get(idx)
        if task_id is None:
            return
        if state in _TERMINAL_STATES:
            per_namespace.update(task_id, state=state, style=style_for(state), completed=1)
            with lock:
                if state == "failed":
                    failures += 1
                    overall.update(overall_task, failures=failures)
                overall.advance(overall_task, 1)
        else:
            per_namespace.update(task_id, state=state, style=style_for(state))

    with Live(Group(overall, per_namespace), console=console, refresh_per_second=10, transient=True):
        return work(_on_update)
