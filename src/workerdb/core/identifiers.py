"""Validation for identifiers that end up inside dynamic DDL.

DDL cannot take bind parameters, so schema, table, column and role names
are interpolated into statements unquoted. PostgreSQL folds unquoted names
to lowercase while catalog lookups bind them verbatim, so only lowercase
plain identifiers are accepted.
"""

from __future__ import annotations

import re

_IDENT_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_LENGTH = 63


def identifier(name: str) -> str:
    """Return `name` unchanged if it is a lowercase plain SQL identifier, else raise."""
    if not isinstance(name, str) or not _IDENT_RE.match(name):
        raise ValueError(
            f"Invalid SQL identifier: {name!r} (use lowercase letters, digits and _)"
        )
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"SQL identifier {name!r} exceeds {MAX_IDENTIFIER_LENGTH} characters."
        )
    return name


def qualified(name: str) -> str:
    """Validate a possibly schema-qualified name such as `auth.users`."""
    parts = name.split(".")
    if len(parts) > 2:
        raise ValueError(f"Invalid qualified name: {name!r}")
    return ".".join(identifier(p) for p in parts)


def is_qualified(name: str) -> bool:
    """Return True for `schema.table` style names."""
    return "." in name
