"""Migration units, ledger and apply engine.

Modules
-------
units     On-disk migration unit folders (up.surql / down.surql)
writer    Atomic unit + baseline write
ledger    MigrationLedger, the applied-set stored in the target database
runner    MigrationRunner with apply_pending() / status()
"""

from surql_migrate.migrations.ledger import LEDGER_TABLE, LedgerEntry, MigrationLedger
from surql_migrate.migrations.runner import (
    MigrationResult,
    MigrationRunner,
    StatusReport,
    UnitState,
    UnitStatus,
)
from surql_migrate.migrations.units import MigrationUnit, discover_units, load_unit
from surql_migrate.migrations.writer import DiffResult, write_migration

__all__ = [
    "LEDGER_TABLE",
    "DiffResult",
    "LedgerEntry",
    "MigrationLedger",
    "MigrationResult",
    "MigrationRunner",
    "MigrationUnit",
    "StatusReport",
    "UnitState",
    "UnitStatus",
    "discover_units",
    "load_unit",
    "write_migration",
]
