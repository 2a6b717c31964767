"""
Structured error types for surql-migrate.

Every failure the engine can produce is a typed ``MigrationError`` carrying
a category, a retry flag, structured context and the chained cause. The
command layer relies on these types to name the failing component and the
version or file involved, so nothing below is ever swallowed.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure the operator must
      react to differently (fix a file, resolve a conflict, re-run)
    - **Explicit Retry Semantics:** Only connectivity loss is retryable
    - **Rich Context:** Errors carry file, location, version and statement
      index for diagnosis
    - **Error Chaining:** The driver exception survives as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       MigrationError                             │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ParseError        DiffError             ConflictError           │
        │  (PARSE)           (VALIDATION)          (CONFLICT)              │
        │                        │                                         │
        │                    DanglingReferenceError                        │
        │                                                                  │
        │  DatabaseError     ConnectivityError     StorageError            │
        │  (DATABASE)        (NETWORK, retryable)  (STORAGE)               │
        │       │                                      │                   │
        │  ApplyError                              SnapshotError           │
        │  StatementError                                                  │
        │                                                                  │
        │  ValidationError   ConfigError                                   │
        │  (VALIDATION)      (CONFIG)                                      │
        │       │                │                                         │
        │  MigrationNotFound InvalidConfigError                            │
        │  VersionOrderError                                               │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ConflictError("20240101_120000", recorded="ab12", found="cd34")
    >>> error.category
    <ErrorCategory.CONFLICT: 'CONFLICT'>
    >>> error.retryable
    False

    >>> error = ConnectivityError("connection refused")
    >>> error.retryable
    True

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    surql-migrate
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories for classification and exit-code routing.

    Attributes:
        PARSE: Malformed definition source or snapshot artefact
        VALIDATION: Structurally invalid schema or request
        CONFLICT: Ledger disagrees with on-disk migration history
        DATABASE: Statement execution failures
        NETWORK: Connectivity loss (the only retryable category)
        STORAGE: Filesystem read/write failures
        CONFIG: Missing or invalid settings
        INTERNAL: Bugs, unexpected state
    """

    PARSE = "PARSE"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error for logging and reporting.

    Only non-None fields are serialised by ``to_dict()``.

    Attributes:
        component: Engine component that failed (parser, diff, ledger, ...)
        file: Source or artefact path involved
        location: ``line:column`` inside ``file``
        version: Migration unit version token
        statement_index: Zero-based index of the failing statement
        metadata: Additional key-value pairs
    """

    component: str | None = None
    file: str | None = None
    location: str | None = None
    version: str | None = None
    statement_index: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["component", "file", "location", "version", "statement_index"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MigrationError(Exception):
    """
    Base exception for all surql-migrate errors.

    Subclasses set ``default_category``, ``default_retryable`` and
    ``component`` so that raising sites only pass what is specific to the
    failure.

    Examples:
        >>> error = MigrationError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = MigrationError("Write failed").with_context(file="up.surql")
        >>> error.context.file
        'up.surql'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    component: str = "engine"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        if self.context.component is None:
            self.context.component = self.component
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MigrationError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageError("Failed").with_context(file="migrations/x/up.surql")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PARSE ERRORS
# =============================================================================


class ParseError(MigrationError):
    """Malformed definition source; fatal for the current command."""

    default_category = ErrorCategory.PARSE
    component = "parser"

    def __init__(
        self,
        detail: str,
        *,
        file: str | None = None,
        line: int | None = None,
        column: int | None = None,
        **kwargs: Any,
    ):
        self.detail = detail
        self.file = file
        self.line = line
        self.column = column
        location = f"{line}:{column}" if line is not None else None
        where = file or "<source>"
        if location:
            where = f"{where}:{location}"
        super().__init__(f"{where}: {detail}", **kwargs)
        self.context.file = file
        self.context.location = location

    @property
    def location(self) -> str | None:
        return self.context.location


# =============================================================================
# DIFF ERRORS
# =============================================================================


class DiffError(MigrationError):
    """Schema change set cannot be resolved; blocks unit generation."""

    default_category = ErrorCategory.VALIDATION
    component = "diff"


class DanglingReferenceError(DiffError):
    """An object references a table (or analyzer) that will not exist."""

    def __init__(self, object: str, reference: str, **kwargs: Any):
        self.object = object
        self.reference = reference
        super().__init__(
            f"{object} references {reference!r}, which is neither defined nor being created",
            **kwargs,
        )


# =============================================================================
# LEDGER ERRORS
# =============================================================================


class ConflictError(MigrationError):
    """
    The ledger recorded a different checksum for a version.

    Never retryable and never auto-resolved: the unit was edited after it
    was applied, and an operator has to decide which side is right.
    """

    default_category = ErrorCategory.CONFLICT
    component = "ledger"

    def __init__(
        self,
        version: str,
        *,
        recorded: str | None = None,
        found: str | None = None,
        **kwargs: Any,
    ):
        self.version = version
        self.recorded = recorded
        self.found = found
        message = f"Migration {version} was applied with checksum {recorded}"
        if found is not None:
            message += f" but the on-disk unit now has checksum {found}"
        super().__init__(message, **kwargs)
        self.context.version = version


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(MigrationError):
    """Statement execution error reported by the target database."""

    default_category = ErrorCategory.DATABASE
    component = "database"


class StatementError(DatabaseError):
    """
    Raised by connections when a statement is rejected.

    ``statement_index`` is set by batching connections that only learn which
    statement failed when the transaction is committed.
    """

    def __init__(self, message: str, *, statement_index: int | None = None, **kwargs: Any):
        self.statement_index = statement_index
        super().__init__(message, **kwargs)
        self.context.statement_index = statement_index


class ApplyError(DatabaseError):
    """A statement of a migration unit failed; the unit was rolled back."""

    component = "apply"

    def __init__(self, version: str, statement_index: int | None, cause: Exception, **kwargs: Any):
        self.version = version
        self.statement_index = statement_index
        where = f"statement {statement_index}" if statement_index is not None else "commit"
        super().__init__(
            f"Migration {version} failed at {where}: {cause}",
            cause=cause,
            **kwargs,
        )
        self.context.version = version
        self.context.statement_index = statement_index


class ConnectivityError(MigrationError):
    """
    The target database is unreachable.

    Reported apart from ApplyError: the right response is a full re-run,
    not a fix to the migration.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True
    component = "connection"


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(MigrationError):
    """Filesystem read or write failure."""

    default_category = ErrorCategory.STORAGE
    component = "storage"


class SnapshotError(StorageError):
    """The baseline snapshot artefact is unreadable or inconsistent."""

    component = "snapshot"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(MigrationError):
    """Request or migration history is invalid. Never retryable."""

    default_category = ErrorCategory.VALIDATION
    component = "apply"


class MigrationNotFoundError(ValidationError):
    """Requested migration version does not exist on disk."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Migration not found: {version}")
        self.context.version = version


class VersionOrderError(ValidationError):
    """Pending migrations are older than the newest applied migration."""

    def __init__(self, versions: list[str]):
        self.versions = versions
        super().__init__(
            "The following migrations have not been applied: " + ", ".join(versions)
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MigrationError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    component = "config"


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, MigrationError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MigrationError",
    "ParseError",
    "DiffError",
    "DanglingReferenceError",
    "ConflictError",
    "DatabaseError",
    "StatementError",
    "ApplyError",
    "ConnectivityError",
    "StorageError",
    "SnapshotError",
    "ValidationError",
    "MigrationNotFoundError",
    "VersionOrderError",
    "ConfigError",
    "InvalidConfigError",
    "is_retryable",
]
