"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from workerdb.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)

_STATUS_STYLES = {
    "absent": "meta",
    "incomplete": "err",
    "drifted": "warn",
    "dirty": "warn",
    "provisioned": "ok",
    "cleared": "ok",
}


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def _q(self, message: str) -> str:
        """Prefix Questionary prompts so they stand out from log output."""
        return f"[workerdb] {message}"

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """Ask for a y/n confirmation before a destructive action."""
        console.print("[meta]Use y/n then Enter[/]")
        return bool(
            questionary.confirm(
                self._q(message),
                default=default,
                style=QUESTIONARY_STYLE_CONFIRM,
                qmark="✦",
                auto_enter=False,
            ).ask()
        )

    def context_table(self, context: Any, title: str = "Worker context") -> None:
        """Expects a WorkerContext-like object."""
        t = Table(title=title, show_lines=False)
        t.add_column("Field", style="meta", no_wrap=True)
        t.add_column("Value", style="ok")

        for name in ("worker_index", "namespace_name", "data_prefix", "tenant_label", "email"):
            t.add_row(name, repr(getattr(context, name, "")))

        console.print(t)

    def namespace_reports_table(
        self, reports: Iterable[Any], title: str = "Worker namespaces"
    ) -> None:
        """
        Render one row per inspected namespace.

        Expects objects with `.name`, `.status`, `.missing_tables`,
        `.drifted_tables`, `.total_rows` and `.manifest_version`.
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Namespace", style="ok", no_wrap=True)
        t.add_column("Status")
        t.add_column("Rows", justify="right")
        t.add_column("Manifest", style="meta")
        t.add_column("Missing / drifted", style="meta")

        for r in reports:
            status = getattr(r.status, "value", str(r.status))
            style = _STATUS_STYLES.get(status, "meta")
            problems = ", ".join([*r.missing_tables, *r.drifted_tables])
            version = "" if r.manifest_version is None else f"v{r.manifest_version}"
            rows = "" if status in ("absent", "incomplete") else str(r.total_rows)
            t.add_row(r.name, f"[{style}]{status}[/{style}]", rows, version, problems)

        console.print(t)

    def namespace_results_table(
        self, results: Iterable[Any], title: str = "Results"
    ) -> None:
        """
        Render results of bulk namespace operations.

        Expects objects with `.namespace`, `.action`, `.ok` and `.error_message`.
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Namespace", style="ok", no_wrap=True)
        t.add_column("Action", style="meta")
        t.add_column("Result")

        for r in results:
            ok = bool(getattr(r, "ok", False))
            err = getattr(r, "error_message", None)
            t.add_row(
                str(r.namespace),
                str(r.action),
                "[ok]OK[/]" if ok else f"[err]FAIL[/] {escape(str(err))}",
            )

        console.print(t)

    def namespaces_table(self, names: list[str], title: str = "Namespaces") -> None:
        """Render a single-column table of namespace names."""
        t = Table(title=title, show_lines=False)
        t.add_column("Namespace", style="ok")

        for n in names:
            t.add_row(str(n))

        console.print(t)


out = Out()
