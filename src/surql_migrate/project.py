"""
Library facade over a definitions project.

``MigrationProject`` wires the settings-driven layout to the engine so that
callers (the CLI, scripts, test suites) do not repeat the plumbing::

    project = MigrationProject(MigrationSettings(project_dir="./db"))
    project.diff(name="add customer")   # writes migrations/<version>_add_customer/
    project.up()                        # applies pending units
    project.status().pending            # what is left

Connections are opened per operation and always closed.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

from surql_migrate.adapters.surrealdb import SurrealConnection
from surql_migrate.core.logging import get_logger
from surql_migrate.core.protocols import DefinitionConnection
from surql_migrate.core.settings import MigrationSettings
from surql_migrate.migrations.ledger import LedgerEntry
from surql_migrate.migrations.runner import MigrationResult, MigrationRunner, StatusReport
from surql_migrate.migrations.writer import DiffResult, write_migration
from surql_migrate.schema.diff import Statement, resolve_diff
from surql_migrate.schema.model import SchemaSnapshot
from surql_migrate.schema.parser import discover_sources, parse_definitions
from surql_migrate.schema.snapshot import SnapshotStore

logger = get_logger(__name__)

ConnectionFactory = Callable[[MigrationSettings], DefinitionConnection]


class MigrationProject:
    """A definitions project plus the database it migrates.

    Parameters
    ----------
    settings
        Layout and connection settings.
    connection_factory
        Opens a connection from ``settings``; defaults to
        :meth:`SurrealConnection.from_settings`.
    """

    def __init__(
        self,
        settings: MigrationSettings | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.settings = settings or MigrationSettings()
        self._connection_factory = connection_factory or SurrealConnection.from_settings
        self.snapshots = SnapshotStore(self.settings.snapshot_path, self.settings.migrations_path)

    # ── Filesystem side ──────────────────────────────────────────────

    def definitions(self) -> SchemaSnapshot:
        """Parse the category folders into the desired schema."""
        return parse_definitions(discover_sources(self.settings.category_dirs))

    def pending_changes(self) -> list[Statement]:
        """Statements between the baseline and the definitions, without writing."""
        return resolve_diff(self.snapshots.load(), self.definitions())

    def diff(self, name: str | None = None, now: datetime | None = None) -> DiffResult:
        """Generate a migration unit for the definition changes, if any."""
        desired = self.definitions()
        statements = resolve_diff(self.snapshots.load(), desired)
        return write_migration(
            statements,
            desired,
            migrations_dir=self.settings.migrations_path,
            snapshot_path=self.settings.snapshot_path,
            name=name,
            now=now,
        )

    # ── Database side ────────────────────────────────────────────────

    @contextmanager
    def connect(self) -> Iterator[DefinitionConnection]:
        conn = self._connection_factory(self.settings)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def runner(self) -> Iterator[MigrationRunner]:
        with self.connect() as conn:
            yield MigrationRunner(conn, self.settings.migrations_path)

    def up(self, dry_run: bool = False, validate_order: bool = False) -> MigrationResult:
        """Apply every pending unit."""
        with self.runner() as runner:
            return runner.apply_pending(dry_run=dry_run, validate_order=validate_order)

    def up_to(self, version: str, dry_run: bool = False, validate_order: bool = False) -> MigrationResult:
        """Apply pending units up to and including ``version``."""
        with self.runner() as runner:
            return runner.apply_pending(dry_run=dry_run, up_to=version, validate_order=validate_order)

    def status(self) -> StatusReport:
        with self.runner() as runner:
            return runner.status()

    def list(self) -> list[LedgerEntry]:
        """Applied migrations, ascending by version."""
        with self.runner() as runner:
            return runner.get_applied()

    def validate_version_order(self) -> None:
        with self.runner() as runner:
            runner.validate_version_order()
