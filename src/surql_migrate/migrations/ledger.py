"""Migration ledger.

The set of applied migration units lives inside the target database, in
the reserved ``script_migration`` table, so every operator pointing at the
same instance sees the same history. Rows are only ever appended.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from surql_migrate.core.errors import ConflictError, StorageError
from surql_migrate.core.logging import get_logger
from surql_migrate.core.protocols import DefinitionConnection
from surql_migrate.core.timestamps import from_iso8601, to_iso8601, utc_now

logger = get_logger(__name__)

LEDGER_TABLE = "script_migration"

_LEDGER_SCHEMA = (
    f"DEFINE TABLE IF NOT EXISTS {LEDGER_TABLE} SCHEMAFULL",
    f"DEFINE FIELD IF NOT EXISTS version ON TABLE {LEDGER_TABLE} TYPE string",
    f"DEFINE FIELD IF NOT EXISTS checksum ON TABLE {LEDGER_TABLE} TYPE string",
    f"DEFINE FIELD IF NOT EXISTS applied_at ON TABLE {LEDGER_TABLE} TYPE string",
    f"DEFINE INDEX IF NOT EXISTS {LEDGER_TABLE}_version ON TABLE {LEDGER_TABLE} FIELDS version UNIQUE",
)


@dataclass(frozen=True)
class LedgerEntry:
    """Record of a single applied migration unit."""

    version: str
    checksum: str
    applied_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> LedgerEntry:
        try:
            applied_at = row.get("applied_at")
            if isinstance(applied_at, str):
                applied_at = from_iso8601(applied_at)
            return cls(version=str(row["version"]), checksum=str(row["checksum"]), applied_at=applied_at)
        except (KeyError, ValueError) as exc:
            raise StorageError(f"Malformed {LEDGER_TABLE} row: {row!r}", cause=exc).with_context(
                component="ledger"
            ) from exc

    def to_row(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "checksum": self.checksum,
            "applied_at": to_iso8601(self.applied_at),
        }


class MigrationLedger:
    """Append-only applied-set stored in the target database.

    Parameters
    ----------
    conn
        Any :class:`~surql_migrate.core.protocols.DefinitionConnection`.

    Example::

        ledger = MigrationLedger(conn)
        ledger.ensure()
        ledger.record("20240101_120000", unit.checksum)
        ledger.list_applied()   # ['20240101_120000']
    """

    def __init__(self, conn: DefinitionConnection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure(self) -> None:
        """Define the ledger table if it does not exist yet."""
        for statement in _LEDGER_SCHEMA:
            self._conn.execute(statement)

    def entries(self) -> list[LedgerEntry]:
        """Every recorded entry, ascending by version."""
        rows = self._conn.select_rows(LEDGER_TABLE)
        entries: dict[str, LedgerEntry] = {}
        for row in rows:
            entry = LedgerEntry.from_row(row)
            previous = entries.get(entry.version)
            if previous is not None and previous.checksum != entry.checksum:
                raise ConflictError(
                    entry.version, recorded=previous.checksum, found=entry.checksum
                ).with_context(reason="ledger holds two checksums for one version")
            entries.setdefault(entry.version, entry)
        return [entries[version] for version in sorted(entries)]

    def list_applied(self) -> list[str]:
        """Applied version tokens, ascending."""
        return [entry.version for entry in self.entries()]

    def lookup(self, version: str) -> LedgerEntry | None:
        for entry in self.entries():
            if entry.version == version:
                return entry
        return None

    def verify(self, version: str, checksum: str) -> bool:
        """
        True if ``version`` is recorded with ``checksum``, False if unrecorded.

        Raises:
            ConflictError: ``version`` is recorded under a different checksum.
        """
        entry = self.lookup(version)
        if entry is None:
            return False
        if entry.checksum != checksum:
            raise ConflictError(version, recorded=entry.checksum, found=checksum)
        return True

    def record(self, version: str, checksum: str, applied_at: datetime | None = None) -> bool:
        """
        Record ``version`` as applied.

        Returns False (and writes nothing) when the identical pair is already
        recorded.

        Raises:
            ConflictError: ``version`` is recorded under a different checksum.
        """
        if self.verify(version, checksum):
            logger.debug("ledger.already_recorded", version=version)
            return False
        entry = LedgerEntry(version, checksum, applied_at or utc_now())
        self._conn.insert_row(LEDGER_TABLE, entry.to_row())
        logger.info("ledger.recorded", version=version, checksum=checksum[:12])
        return True
