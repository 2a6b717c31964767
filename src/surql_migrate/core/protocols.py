"""
Protocol definitions for the target database.

The engine never talks to a driver directly. Everything it needs from the
database (executing definition statements, transactional scoping and
reading/writing the rows of the reserved ledger table) is described by
``DefinitionConnection``; the SurrealDB adapter and the test doubles
satisfy it structurally.

Architecture:
    ::

        DefinitionConnection:
        ┌────────────────────────────────────────────────────────────┐
        │ execute(statement)        → run (or buffer) one statement  │
        │ begin() / commit()        → transaction scope              │
        │ rollback()                → discard the open transaction   │
        │ select_rows(table)        → read ledger rows               │
        │ insert_row(table, row)    → append a ledger row            │
        │ transactional_ledger      → insert_row joins the open tx   │
        │ close()                   → release the connection         │
        └────────────────────────────────────────────────────────────┘

    Failure contract:
        - ``ConnectivityError`` when the database cannot be reached
        - ``StatementError`` when a statement is rejected; batching
          implementations raise it from ``commit()`` with
          ``statement_index`` set

Tags:
    protocol, connection, transaction, surql-migrate, contracts
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DefinitionConnection(Protocol):
    """Minimal synchronous connection to a definition-language database."""

    #: When True, ``insert_row`` issued inside ``begin()``/``commit()`` is
    #: committed atomically with the statements of that transaction.
    transactional_ledger: bool

    def execute(self, statement: str) -> Any:
        """Execute one definition statement."""
        ...

    def begin(self) -> None:
        """Open a transaction scope."""
        ...

    def commit(self) -> None:
        """Commit the open transaction."""
        ...

    def rollback(self) -> None:
        """Discard the open transaction."""
        ...

    def select_rows(self, table: str) -> list[dict[str, Any]]:
        """Return every row of ``table`` (empty if the table does not exist)."""
        ...

    def insert_row(self, table: str, row: dict[str, Any]) -> None:
        """Append one row to ``table``."""
        ...

    def close(self) -> None:
        ...
