from workerdb.cli.tui import _namespace_choice_title
from workerdb.core.namespaces import NamespaceReport, NamespaceStatus


def test_namespace_choice_title_aligns_status_column():
    first = _namespace_choice_title(
        NamespaceReport(name="test_worker_1", status=NamespaceStatus.CLEARED, row_counts={"a": 0}),
        name_width=14,
    )
    second = _namespace_choice_title(
        NamespaceReport(name="test_worker_10", status=NamespaceStatus.ABSENT),
        name_width=14,
    )

    assert first.startswith("test_worker_1 ")
    assert second.startswith("test_worker_10")
    assert first.index("(") == second.index("(")


def test_namespace_choice_title_shows_row_totals_when_inspected():
    title = _namespace_choice_title(
        NamespaceReport(
            name="test_worker_0",
            status=NamespaceStatus.DIRTY,
            row_counts={"accounts": 2, "projects": 3},
        ),
        name_width=13,
    )

    assert title == "test_worker_0  (dirty, 5 rows)"


def test_namespace_choice_title_without_counts():
    title = _namespace_choice_title(
        NamespaceReport(name="test_worker_0", status=NamespaceStatus.INCOMPLETE),
        name_width=13,
    )

    assert title == "test_worker_0  (incomplete)"
