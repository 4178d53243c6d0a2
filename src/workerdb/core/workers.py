"""Worker identity: map a test-runner worker index to its isolation handle.

Everything here is a pure function of the worker index (plus, for the
helpers that read it, the process environment). Two processes allocating
the same index get identical contexts without talking to each other.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Mapping

from workerdb.core.namespaces import DEFAULT_NAMESPACE_PREFIX, namespace_name

MAX_WORKERS = 8

# Local database + dev server get flaky above this; override via env.
LOCAL_DEFAULT_CAP = 4

# SQL LIKE pattern matching every worker's tagged rows.
ALL_WORKERS_PATTERN = "[W%]%"

_PREFIX_RE = re.compile(r"^\[W\d+\] ")
_XDIST_RE = re.compile(r"^gw(\d+)$")
_CLEAN_INT_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class WorkerContext:
    """
    Isolation handle for one test worker.

    Attributes:
        worker_index: 0-based worker index.
        namespace_name: Schema holding this worker's cloned tables.
        data_prefix: Prefix tagging human-readable entity names, e.g. "[W3] ".
        tenant_label: Group/tenant name used by row-tagging isolation.
        email: Worker-specific test user email.
    """

    worker_index: int
    namespace_name: str
    data_prefix: str
    tenant_label: str
    email: str


def _project_slug(project: str | None) -> str:
    raw = (project or "chromium").lower()
    slug = re.sub(r"[^a-z0-9]+", "-", raw).strip("-")
    return slug or "chromium"


def allocate(
    worker_index: int,
    *,
    max_workers: int = MAX_WORKERS,
    project: str | None = None,
    namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX,
) -> WorkerContext:
    """Return the deterministic WorkerContext for `worker_index`."""
    if isinstance(worker_index, bool) or not isinstance(worker_index, int):
        raise ValueError(f"worker_index must be an int, got {worker_index!r}")
    if not 0 <= worker_index < max_workers:
        raise ValueError(
            f"worker_index {worker_index} is outside [0, {max_workers})."
        )

    return WorkerContext(
        worker_index=worker_index,
        namespace_name=namespace_name(worker_index, prefix=namespace_prefix),
        data_prefix=f"[W{worker_index}] ",
        tenant_label=f"Test Worker {worker_index}",
        email=f"e2e-test-{_project_slug(project)}-worker-{worker_index}@example.com",
    )


def normalize_worker_index(raw_index: int, worker_count: int) -> int:
    """
    Fold an ever-growing runner index back onto the provisioned workers.

    Some runners hand out a fresh index to every restarted worker (e.g. on
    retries); with two provisioned workers, index 3 maps back to 1.
    """
    if worker_count < 1:
        raise ValueError("worker_count must be >= 1")
    if raw_index < 0:
        raise ValueError("raw_index must be >= 0")
    return raw_index % worker_count


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


def resolve_worker_count(
    env: Mapping[str, str] | None = None,
    cpu_count: int | None = None,
    *,
    max_workers: int = MAX_WORKERS,
) -> int:
    """
    Decide how many workers the suite runs with.

    An explicit WORKERDB_WORKERS (or PW_WORKERS) override wins when it is a
    clean positive integer. Otherwise CI uses every core and local runs use
    half of them, capped at LOCAL_DEFAULT_CAP. Always within [1, max_workers].
    """
    env = os.environ if env is None else env
    override = env.get("WORKERDB_WORKERS") or env.get("PW_WORKERS")
    if override and _CLEAN_INT_RE.match(override) and int(override) > 0:
        return _clamp(int(override), 1, max_workers)

    cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    if env.get("CI"):
        return _clamp(cpus, 1, max_workers)
    return _clamp(min(cpus // 2, LOCAL_DEFAULT_CAP), 1, max_workers)


def worker_index_from_env(env: Mapping[str, str] | None = None) -> int:
    """
    Read this process's worker index.

    WORKERDB_WORKER_INDEX wins; otherwise pytest-xdist's PYTEST_XDIST_WORKER
    (`gw3` -> 3); otherwise 0 for a single, non-distributed run.
    """
    env = os.environ if env is None else env
    explicit = env.get("WORKERDB_WORKER_INDEX")
    if explicit:
        if not _CLEAN_INT_RE.match(explicit):
            raise ValueError(f"WORKERDB_WORKER_INDEX must be an integer, got {explicit!r}")
        return int(explicit)

    match = _XDIST_RE.match(env.get("PYTEST_XDIST_WORKER", ""))
    return int(match.group(1)) if match else 0


def add_worker_prefix(name: str, worker_index: int) -> str:
    """Tag an entity name with the worker prefix: "Nubank" -> "[W0] Nubank"."""
    return f"[W{worker_index}] {name}"


def strip_worker_prefix(name: str) -> str:
    """Remove a leading worker prefix, if any."""
    return _PREFIX_RE.sub("", name)


def worker_prefix_pattern(worker_index: int) -> str:
    """SQL LIKE pattern matching one worker's tagged rows, e.g. "[W0]%"."""
    return f"[W{worker_index}]%"


def worker_email_pattern(worker_index: int) -> str:
    """SQL LIKE pattern matching one worker's test-user emails (any project)."""
    return f"e2e-test-%-worker-{worker_index}@%"
