"""Application context management for the CLI."""

import logging
from dataclasses import dataclass

from rich.logging import RichHandler

from workerdb.cli.common.exits import exit_from_exc
from workerdb.cli.common.output import console
from workerdb.core.auth import ConfigurationError, IsolationConfig, get_gateway
from workerdb.core.gateway import SqlGateway
from workerdb.core.manifest import TableManifest
from workerdb.core.workers import resolve_worker_count


@dataclass
class AppContext:
    """Application context holding configuration, manifest and SQL gateway."""

    config: IsolationConfig
    manifest: TableManifest
    gateway: SqlGateway

    def worker_count(self, workers: int | None) -> int:
        """Resolve --workers the way the suite sizes itself (WORKERDB_WORKERS, CI, CPUs)."""
        if workers is not None:
            return workers
        return resolve_worker_count(max_workers=self.config.max_workers)

    def teardown_count(self, workers: int | None) -> int:
        """Resolve --workers for teardown, which covers every possible namespace."""
        return workers if workers is not None else self.config.max_workers


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG shows every statement."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def build_context() -> AppContext:
    """Build the CLI context from the environment or exit with a config error.

    Returns:
        AppContext: Context with loaded manifest and a ready gateway.
    """
    try:
        config = IsolationConfig.from_environment()
        manifest = config.load_manifest()
        gateway = get_gateway(config)
    except ConfigurationError as exc:
        exit_from_exc(exc, code=1)
    return AppContext(config=config, manifest=manifest, gateway=gateway)
