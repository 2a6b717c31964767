"""surql-migrate core -- errors, logging, settings and shared primitives.

Architecture::

    errors.py          Structured error hierarchy (MigrationError and kinds)
    logging.py         structlog configuration + scoped context
    settings.py        pydantic-settings configuration (SURQL_MIGRATE_*)
    protocols.py       DefinitionConnection protocol (target database)
    hashing.py         Content checksums for migration units
    timestamps.py      Version tokens + UTC helpers (stdlib-only)
"""

from surql_migrate.core.errors import (
    ApplyError,
    ConfigError,
    ConflictError,
    ConnectivityError,
    DanglingReferenceError,
    DatabaseError,
    DiffError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MigrationError,
    MigrationNotFoundError,
    ParseError,
    SnapshotError,
    StatementError,
    StorageError,
    ValidationError,
    VersionOrderError,
)
from surql_migrate.core.protocols import DefinitionConnection

__all__ = [
    "ApplyError",
    "ConfigError",
    "ConflictError",
    "ConnectivityError",
    "DanglingReferenceError",
    "DatabaseError",
    "DefinitionConnection",
    "DiffError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidConfigError",
    "MigrationError",
    "MigrationNotFoundError",
    "ParseError",
    "SnapshotError",
    "StatementError",
    "StorageError",
    "ValidationError",
    "VersionOrderError",
]
