"""Bulk namespace operations across many workers.

Namespaces are independent of each other, so bulk provisioning may run
several of them at once in a thread pool. Within one namespace the
statement order is still strictly sequential. Each worker's outcome is
reported separately; one failing namespace does not hide the others, and
the failure itself is kept on the result for the caller to raise or report.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Iterable

from workerdb.core.gateway import SqlGateway
from workerdb.core.manifest import TableManifest
from workerdb.core.namespaces import (
    DEFAULT_NAMESPACE_PREFIX,
    GrantRoles,
    drop_namespace,
    ensure_namespace_ready,
    namespace_name,
)


@dataclass(frozen=True)
class NamespaceResult:
    """Outcome of one bulk operation on one worker namespace."""

    worker_index: int
    namespace: str
    action: str
    ok: bool
    error: BaseException | None = None

    @property
    def error_message(self) -> str | None:
        return str(self.error) if self.error is not None else None


ProgressCallback = Callable[[int, str], None]


def ensure_namespaces_parallel(
    gateway: SqlGateway,
    worker_indexes: Iterable[int],
    max_parallel: int,
    *,
    manifest: TableManifest | None = None,
    roles: GrantRoles | None = None,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
    on_update: ProgressCallback | None = None,
) -> list[NamespaceResult]:
    """
    Run `ensure_namespace_ready` for several workers concurrently.

    Args:
        gateway: Gateway shared by all threads (it holds no connection state).
        worker_indexes: Workers whose namespaces should be made ready.
        max_parallel: Maximum number of namespaces handled at once.
        on_update: Optional callback receiving (worker_index, state) where
            state is "running", "created", "cleared" or "failed".

    Returns:
        One NamespaceResult per worker, ordered by worker index.
    """
    if max_parallel < 1:
        raise ValueError("max_parallel must be >= 1")
    indexes = sorted(set(worker_indexes))
    if not indexes:
        return []

    def _notify(idx: int, state: str) -> None:
        if on_update is not None:
            on_update(idx, state)

    def _one(idx: int) -> NamespaceResult:
        name = namespace_name(idx, prefix=prefix)
        _notify(idx, "running")
        try:
            action = ensure_namespace_ready(
                gateway, idx, manifest=manifest, roles=roles, prefix=prefix
            )
        except Exception as exc:  # noqa: BLE001 - reported per namespace
            _notify(idx, "failed")
            return NamespaceResult(idx, name, "ensure", ok=False, error=exc)
        _notify(idx, action.value)
        return NamespaceResult(idx, name, action.value, ok=True)

    results: list[NamespaceResult] = []
    with ThreadPoolExecutor(max_workers=max_parallel) as pool:
        futures = [pool.submit(_one, idx) for idx in indexes]
        for f in as_completed(futures):
            results.append(f.result())

    return sorted(results, key=lambda r: r.worker_index)


def drop_namespaces(
    gateway: SqlGateway,
    worker_indexes: Iterable[int],
    *,
    dry_run: bool = False,
    prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> list[NamespaceResult]:
    """Drop several namespaces one after another, collecting per-worker results."""
    results: list[NamespaceResult] = []
    for idx in sorted(set(worker_indexes)):
        name = namespace_name(idx, prefix=prefix)
        if dry_run:
            results.append(NamespaceResult(idx, name, "drop (dry-run)", ok=True))
            continue
        try:
            drop_namespace(gateway, idx, prefix=prefix)
            results.append(NamespaceResult(idx, name, "drop", ok=True))
        except Exception as exc:  # noqa: BLE001
            results.append(NamespaceResult(idx, name, "drop", ok=False, error=exc))
    return results
