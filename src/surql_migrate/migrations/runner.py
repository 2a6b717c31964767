"""Apply engine.

Reads migration units from the migrations folder, compares them with the
ledger held in the target database and applies the pending ones in
ascending version order, one transaction per unit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from surql_migrate.core.errors import (
    ApplyError,
    ConflictError,
    ConnectivityError,
    MigrationError,
    MigrationNotFoundError,
    StatementError,
    VersionOrderError,
)
from surql_migrate.core.logging import LogContext, get_logger
from surql_migrate.core.protocols import DefinitionConnection
from surql_migrate.migrations.ledger import LedgerEntry, MigrationLedger
from surql_migrate.migrations.units import MigrationUnit, discover_units

logger = get_logger(__name__)


class UnitState(str, Enum):
    """Per-run lifecycle of a unit. Only APPLIED is ever persisted."""

    PENDING = "pending"
    APPLYING = "applying"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class MigrationResult:
    """Result of a migration run."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    planned: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def in_sync(self) -> bool:
        return not self.planned


@dataclass(frozen=True)
class UnitStatus:
    version: str
    state: str
    name: str | None = None
    checksum: str | None = None
    applied_at: datetime | None = None


@dataclass
class StatusReport:
    """Ledger state versus on-disk units."""

    units: list[UnitStatus] = field(default_factory=list)

    def _with_state(self, state: str) -> list[UnitStatus]:
        return [unit for unit in self.units if unit.state == state]

    @property
    def applied(self) -> list[UnitStatus]:
        return self._with_state("applied")

    @property
    def pending(self) -> list[UnitStatus]:
        return self._with_state("pending")

    @property
    def conflicts(self) -> list[UnitStatus]:
        return self._with_state("conflict")

    @property
    def missing(self) -> list[UnitStatus]:
        return self._with_state("missing")

    @property
    def healthy(self) -> bool:
        return not self.conflicts


class MigrationRunner:
    """Applies migration units from a migrations folder.

    Parameters
    ----------
    conn
        Any :class:`~surql_migrate.core.protocols.DefinitionConnection`.
    migrations_dir
        Folder holding one sub-folder per unit.
    ledger
        Ledger to consult; defaults to one on ``conn``.

    Example::

        runner = MigrationRunner(conn, "migrations")
        result = runner.apply_pending()
        print(f"Applied {len(result.applied)} migrations")
    """

    def __init__(
        self,
        conn: DefinitionConnection,
        migrations_dir: Path | str,
        ledger: MigrationLedger | None = None,
    ) -> None:
        self._conn = conn
        self._migrations_dir = Path(migrations_dir)
        self._ledger = ledger or MigrationLedger(conn)
        self.states: dict[str, UnitState] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def units(self) -> list[MigrationUnit]:
        return discover_units(self._migrations_dir)

    def get_applied(self) -> list[LedgerEntry]:
        """Return ledger entries, ascending by version."""
        return self._ledger.entries()

    def get_pending(self, up_to: str | None = None) -> list[MigrationUnit]:
        """
        Return units not yet recorded in the ledger, ascending by version.

        Raises:
            ConflictError: a recorded unit's checksum no longer matches.
            MigrationNotFoundError: ``up_to`` names no on-disk unit.
        """
        units = self.units
        if up_to is not None and up_to not in {unit.version for unit in units}:
            raise MigrationNotFoundError(up_to)

        recorded = {entry.version: entry for entry in self.get_applied()}
        pending = []
        for unit in units:
            entry = recorded.get(unit.version)
            if entry is None:
                if up_to is None or unit.version <= up_to:
                    pending.append(unit)
            elif entry.checksum != unit.checksum:
                raise ConflictError(
                    unit.version, recorded=entry.checksum, found=unit.checksum
                ).with_context(file=str(unit.path) if unit.path else None)
        return pending

    def validate_version_order(self) -> None:
        """
        Raise if a pending unit is older than the newest applied one.

        Such a unit was usually merged from another branch after a newer
        unit had already been applied.
        """
        applied = self._ledger.list_applied()
        if not applied:
            return
        latest = applied[-1]
        stale = [unit.version for unit in self.get_pending() if unit.version < latest]
        if stale:
            raise VersionOrderError(stale)

    def apply_pending(
        self,
        dry_run: bool = False,
        up_to: str | None = None,
        validate_order: bool = False,
    ) -> MigrationResult:
        """Apply pending units in version order, stopping at the first failure.

        With ``dry_run`` the pending set is resolved and returned in
        ``planned`` without writing to the database.

        Raises:
            ApplyError: a statement failed; that unit was rolled back and
                later units were not attempted.
            ConnectivityError: the database became unreachable.
            ConflictError: a recorded unit was edited after it was applied.
        """
        if validate_order:
            self.validate_version_order()
        pending = self.get_pending(up_to)
        result = MigrationResult(
            planned=[unit.version for unit in pending],
            skipped=[v for v in self._ledger.list_applied() if v not in {u.version for u in pending}],
            dry_run=dry_run,
        )
        for unit in pending:
            self.states[unit.version] = UnitState.PENDING

        if dry_run:
            for unit in pending:
                logger.info("migration.planned", version=unit.version, statements=len(unit.statements))
            return result

        if pending:
            self._ledger.ensure()
        for unit in pending:
            self._apply_unit(unit)
            result.applied.append(unit.version)
        logger.info("migration.run_complete", applied=len(result.applied))
        return result

    def status(self) -> StatusReport:
        """Compare every on-disk unit with the ledger without raising on conflicts."""
        recorded = {entry.version: entry for entry in self.get_applied()}
        report = StatusReport()
        for unit in self.units:
            entry = recorded.pop(unit.version, None)
            if entry is None:
                state = "pending"
            elif entry.checksum != unit.checksum:
                state = "conflict"
            else:
                state = "applied"
            report.units.append(
                UnitStatus(
                    version=unit.version,
                    state=state,
                    name=unit.name,
                    checksum=unit.checksum,
                    applied_at=entry.applied_at if entry else None,
                )
            )
        for entry in recorded.values():
            report.units.append(
                UnitStatus(
                    version=entry.version,
                    state="missing",
                    checksum=entry.checksum,
                    applied_at=entry.applied_at,
                )
            )
        report.units.sort(key=lambda status: status.version)
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply_unit(self, unit: MigrationUnit) -> None:
        statements = unit.statements
        transactional = getattr(self._conn, "transactional_ledger", False)
        with LogContext(version=unit.version):
            self.states[unit.version] = UnitState.APPLYING
            logger.info("migration.applying", statements=len(statements))

            try:
                self._conn.begin()
            except MigrationError:
                self.states[unit.version] = UnitState.FAILED
                raise

            current: int | None = None
            try:
                for current, statement in enumerate(statements):
                    self._conn.execute(statement)
                current = None
                if transactional:
                    self._ledger.record(unit.version, unit.checksum)
                self._conn.commit()
            except ConnectivityError:
                self._fail(unit)
                raise
            except StatementError as exc:
                self._fail(unit)
                failed_at = exc.statement_index if exc.statement_index is not None else current
                if failed_at is not None and failed_at >= len(statements):
                    failed_at = None
                logger.error("migration.failed", statement_index=failed_at, error=str(exc))
                raise ApplyError(unit.version, failed_at, exc).with_context(
                    file=str(unit.path) if unit.path else None
                ) from exc
            except MigrationError:
                self._fail(unit)
                raise
            except Exception as exc:
                self._fail(unit)
                logger.error("migration.failed", statement_index=current, error=str(exc))
                raise ApplyError(unit.version, current, exc) from exc

            if not transactional:
                # Committed but unrecorded until this succeeds; a re-run
                # re-applies the unit.
                self._ledger.record(unit.version, unit.checksum)

            self.states[unit.version] = UnitState.APPLIED
            logger.info("migration.applied", statements=len(statements))

    def _fail(self, unit: MigrationUnit) -> None:
        self.states[unit.version] = UnitState.FAILED
        try:
            self._conn.rollback()
        except MigrationError as exc:
            logger.error("migration.rollback_failed", error=str(exc))
