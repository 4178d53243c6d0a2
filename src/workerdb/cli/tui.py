"""Terminal UI utilities for the workerdb CLI."""

from __future__ import annotations

import questionary

from workerdb.cli.common.tui_style import QUESTIONARY_STYLE_SELECT
from workerdb.core.namespaces import NamespaceReport


def _namespace_choice_title(report: NamespaceReport, *, name_width: int) -> str:
    """Format one choice as `<namespace>  (<status>, <n> rows)` with aligned status."""
    status = report.status.value
    detail = status if not report.row_counts else f"{status}, {report.total_rows} rows"
    return f"{report.name.ljust(name_width)}  ({detail})"


def select_namespaces(reports: list[NamespaceReport]) -> list[NamespaceReport]:
    """Display a checkbox prompt to select namespaces from a list.

    Args:
        reports: Inspected namespaces to choose from.

    Returns:
        The selected reports, or an empty list if none were selected.
    """
    name_width = max((len(r.name) for r in reports), default=0)

    choices = [
        questionary.Choice(
            title=_namespace_choice_title(r, name_width=name_width),
            value=r,
        )
        for r in reports
    ]

    return (
        questionary.checkbox(
            "Select namespaces:",
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
        ).ask()
        or []
    )
