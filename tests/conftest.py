"""
Shared pytest fixtures for surql-migrate tests.

This module provides:
- ``MemoryConnection``, an in-memory DefinitionConnection with transaction
  snapshots and one-shot failure injection
- Project layout fixtures on ``tmp_path``
- A fixed clock for deterministic version tokens

Usage:
    def test_something(conn, project):
        project.write("schemas/customer.surql", "DEFINE TABLE customer;")
        ...
"""

import copy
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import structlog

# Ensure surql_migrate package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from surql_migrate.core.errors import ConnectivityError, StatementError
from surql_migrate.core.settings import MigrationSettings
from surql_migrate.migrations.ledger import LEDGER_TABLE
from surql_migrate.project import MigrationProject


# =============================================================================
# In-memory connection
# =============================================================================


class MemoryConnection:
    """DefinitionConnection double.

    ``fail_on`` makes the next statement containing that substring fail
    once; ``down`` makes every call raise ConnectivityError.
    """

    def __init__(self, transactional_ledger: bool = True) -> None:
        self.transactional_ledger = transactional_ledger
        self.executed: list[str] = []
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[str] = []
        self.fail_on: str | None = None
        self.down = False
        self.closed = False
        self._saved: tuple[list[str], dict[str, list[dict[str, Any]]]] | None = None

    @property
    def in_transaction(self) -> bool:
        return self._saved is not None

    @property
    def schema_statements(self) -> list[str]:
        """Executed statements that are not ledger bookkeeping."""
        return [s for s in self.executed if LEDGER_TABLE not in s]

    def ledger_rows(self) -> list[dict[str, Any]]:
        return self.tables.get(LEDGER_TABLE, [])

    def _check(self) -> None:
        if self.down:
            raise ConnectivityError("connection refused")

    def execute(self, statement: str) -> None:
        self._check()
        if self.fail_on is not None and self.fail_on in statement:
            self.fail_on = None
            raise StatementError(f"rejected: {statement}")
        self.executed.append(statement)

    def begin(self) -> None:
        self._check()
        self.calls.append("begin")
        self._saved = (list(self.executed), copy.deepcopy(self.tables))

    def commit(self) -> None:
        self._check()
        self.calls.append("commit")
        self._saved = None

    def rollback(self) -> None:
        self.calls.append("rollback")
        if self._saved is not None:
            self.executed, self.tables = self._saved
            self._saved = None

    def select_rows(self, table: str) -> list[dict[str, Any]]:
        self._check()
        return [dict(row) for row in self.tables.get(table, [])]

    def insert_row(self, table: str, row: dict[str, Any]) -> None:
        self._check()
        self.tables.setdefault(table, []).append(dict(row))

    def close(self) -> None:
        self.closed = True


# =============================================================================
# Project layout
# =============================================================================


class ProjectLayout:
    """A definitions project rooted at a temporary directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.settings = MigrationSettings(project_dir=root)

    def write(self, relative: str, text: str) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    def remove(self, relative: str) -> None:
        (self.root / relative).unlink()

    def unit_dirs(self) -> list[Path]:
        migrations = self.settings.migrations_path
        if not migrations.is_dir():
            return []
        return sorted(p for p in migrations.iterdir() if p.is_dir())

    def add_unit(self, folder: str, up: str, down: str | None = None) -> Path:
        path = self.settings.migrations_path / folder
        path.mkdir(parents=True, exist_ok=True)
        (path / "up.surql").write_text(up, encoding="utf-8")
        if down is not None:
            (path / "down.surql").write_text(down, encoding="utf-8")
        return path


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo CLI logging configuration between tests."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture()
def conn() -> MemoryConnection:
    return MemoryConnection()


@pytest.fixture()
def make_connection():
    """Factory for connections with non-default ledger semantics."""
    return MemoryConnection


@pytest.fixture()
def project(tmp_path: Path) -> ProjectLayout:
    return ProjectLayout(tmp_path)


@pytest.fixture()
def engine(project: ProjectLayout, conn: MemoryConnection) -> MigrationProject:
    """MigrationProject over ``project`` whose connections are ``conn``."""
    return MigrationProject(project.settings, connection_factory=lambda settings: conn)


@pytest.fixture()
def clock():
    """Deterministic 'now' values, one second apart."""

    class Clock:
        def __init__(self) -> None:
            self.current = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

        def __call__(self) -> datetime:
            value = self.current
            self.current += timedelta(seconds=1)
            return value

    return Clock()
