import threading

import pytest

from workerdb.core.bulk import drop_namespaces, ensure_namespaces_parallel
from workerdb.core.gateway import SqlExecutionError


class _Boom(Exception):
    sqlstate = "42501"


def test_ensure_namespaces_parallel_rejects_non_positive_parallel(catalog):
    with pytest.raises(ValueError, match="max_parallel"):
        ensure_namespaces_parallel(catalog, [0], 0)


def test_ensure_namespaces_parallel_returns_empty_on_empty_input(catalog):
    assert ensure_namespaces_parallel(catalog, [], 2) == []


def test_ensure_namespaces_parallel_reports_each_worker_in_order(catalog):
    updates: list[tuple[int, str]] = []
    lock = threading.Lock()

    def _on_update(idx: int, state: str) -> None:
        with lock:
            updates.append((idx, state))

    results = ensure_namespaces_parallel(catalog, [2, 0, 1, 1], 1, on_update=_on_update)

    assert [(r.worker_index, r.namespace, r.action, r.ok) for r in results] == [
        (0, "test_worker_0", "created", True),
        (1, "test_worker_1", "created", True),
        (2, "test_worker_2", "created", True),
    ]
    assert sorted(updates) == sorted(
        [(i, "running") for i in range(3)] + [(i, "created") for i in range(3)]
    )


def test_ensure_namespaces_parallel_keeps_failures_per_namespace(catalog):
    catalog.fail_on["test_worker_1"] = SqlExecutionError("GRANT ...", _Boom("denied"))

    results = ensure_namespaces_parallel(catalog, [0, 1], 1)

    ok, failed = results
    assert ok.ok and ok.action == "created"
    assert not failed.ok
    assert failed.action == "ensure"
    assert "denied" in failed.error_message


def test_ensure_namespaces_parallel_clears_existing_namespaces(catalog):
    ensure_namespaces_parallel(catalog, [0], 1)

    results = ensure_namespaces_parallel(catalog, [0], 1)

    assert results[0].action == "cleared"


def test_drop_namespaces_dry_run_does_not_touch_gateway(catalog):
    results = drop_namespaces(catalog, [1, 0], dry_run=True)

    assert catalog.statements == []
    assert [(r.namespace, r.action, r.ok) for r in results] == [
        ("test_worker_0", "drop (dry-run)", True),
        ("test_worker_1", "drop (dry-run)", True),
    ]


def test_drop_namespaces_collects_per_namespace_errors(catalog):
    catalog.fail_on["DROP SCHEMA IF EXISTS test_worker_1"] = SqlExecutionError(
        "DROP SCHEMA IF EXISTS test_worker_1 CASCADE", _Boom("in use")
    )

    results = drop_namespaces(catalog, [0, 1, 2])

    assert [r.ok for r in results] == [True, False, True]
    assert results[0].error is None
    assert "in use" in results[1].error_message
