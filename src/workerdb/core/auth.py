"""Connection settings for the privileged database gateway.

This module centralizes how the admin DSN and the rest of the isolation
settings are read from the environment, and how the gateway is built from
them. Anything missing or malformed is reported as a ConfigurationError
before a single statement reaches the database.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from psycopg import conninfo as pg_conninfo
from psycopg import errors as pg_errors

from workerdb.core.adapters.postgres import PostgresAdminAdapter
from workerdb.core.manifest import ManifestError, TableManifest, load_manifest
from workerdb.core.namespaces import GrantRoles

DSN_ENV = "WORKERDB_DSN"
DSN_FALLBACK_ENV = "DATABASE_URL"


class ConfigurationError(RuntimeError):
    """Raised when the isolation layer is not configured correctly."""


def _redact(dsn: str) -> str:
    """Hide passwords in both URL and key=value DSN forms."""
    redacted = re.sub(r"(://[^:/@]+:)[^@]*@", r"\1***@", dsn)
    return re.sub(r"(password\s*=\s*)\S+", r"\1***", redacted, flags=re.IGNORECASE)


def _sanitize_dsn(dsn: str | None) -> str:
    """
    Normalize and validate a PostgreSQL connection string.

    - Strips surrounding whitespace
    - Rejects empty values
    - Rejects strings libpq cannot parse
    """
    if not dsn or not dsn.strip():
        raise ConfigurationError(
            f"No admin database DSN configured. Set {DSN_ENV} "
            f"(or {DSN_FALLBACK_ENV}) to a privileged connection string."
        )
    dsn = dsn.strip()
    try:
        pg_conninfo.conninfo_to_dict(dsn)
    except pg_errors.ProgrammingError as exc:
        raise ConfigurationError(f"Invalid admin DSN '{_redact(dsn)}': {exc}") from exc
    return dsn


def _split_roles(raw: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if raw is None:
        return default
    return tuple(r.strip() for r in raw.split(",") if r.strip())


def _positive_int(env: Mapping[str, str], name: str, default: int | None) -> int | None:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    raw = raw.strip()
    if not raw.isdigit() or int(raw) < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got '{raw}'.")
    return int(raw)


@dataclass(frozen=True)
class IsolationConfig:
    """Everything the isolation layer needs from its environment."""

    dsn: str = field(repr=False)
    roles: GrantRoles = GrantRoles()
    max_workers: int = 8
    manifest_path: Path | None = None
    strategy: str = "schema"
    connect_timeout: int | None = None

    @classmethod
    def from_environment(cls, env: Mapping[str, str] | None = None) -> "IsolationConfig":
        """Create configuration from WORKERDB_* environment variables."""
        env = os.environ if env is None else env
        defaults = GrantRoles()
        manifest = env.get("WORKERDB_MANIFEST")
        return cls(
            dsn=_sanitize_dsn(env.get(DSN_ENV) or env.get(DSN_FALLBACK_ENV)),
            roles=GrantRoles(
                app_roles=_split_roles(env.get("WORKERDB_APP_ROLES"), defaults.app_roles),
                read_only_roles=_split_roles(
                    env.get("WORKERDB_READONLY_ROLES"), defaults.read_only_roles
                ),
            ),
            max_workers=_positive_int(env, "WORKERDB_MAX_WORKERS", 8) or 8,
            manifest_path=Path(manifest) if manifest else None,
            strategy=(env.get("WORKERDB_STRATEGY") or "schema").strip().lower(),
            connect_timeout=_positive_int(env, "WORKERDB_CONNECT_TIMEOUT", None),
        )

    def load_manifest(self) -> TableManifest:
        """Load the configured manifest, reporting problems as configuration errors."""
        try:
            return load_manifest(self.manifest_path)
        except ManifestError as exc:
            raise ConfigurationError(str(exc)) from exc


def get_gateway(config: IsolationConfig | None = None) -> PostgresAdminAdapter:
    """
    Create and return the privileged SQL gateway.

    Without an explicit config the settings are read from the environment,
    so a missing DSN fails here rather than on the first namespace call.
    """
    config = config or IsolationConfig.from_environment()
    return PostgresAdminAdapter(
        _sanitize_dsn(config.dsn), connect_timeout=config.connect_timeout
    )
