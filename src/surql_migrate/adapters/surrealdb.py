"""
SurrealDB connection.

Implements :class:`~surql_migrate.core.protocols.DefinitionConnection` on
top of the ``surrealdb`` SDK's blocking client.

SurrealDB transactions are statement-delimited, not session-scoped, so a
transaction is buffered client-side and sent as one
``BEGIN TRANSACTION; ...; COMMIT TRANSACTION;`` request. Ledger rows
inserted while the buffer is open travel in the same request, which makes
unit statements and their ledger entry commit atomically
(``transactional_ledger = True``).

When a buffered statement fails, the server reports the failing statement
as ``ERR`` and every other one as "not executed due to a failed
transaction"; the index of the real failure is carried on the raised
``StatementError``.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from surrealdb import Surreal

from surql_migrate.core.errors import ConnectivityError, DatabaseError, StatementError
from surql_migrate.core.logging import get_logger
from surql_migrate.core.settings import MigrationSettings

logger = get_logger(__name__)

_CASCADE_MARKER = "not executed due to a failed transaction"
_MISSING_TABLE_MARKER = "does not exist"
_TRANSPORT_ERRORS = (OSError, ConnectionError, TimeoutError)


class SurrealConnection:
    """Blocking SurrealDB connection with client-side transaction buffering.

    Parameters
    ----------
    client
        A connected ``surrealdb`` client (or anything exposing
        ``query_raw`` and ``close``).
    """

    transactional_ledger = True

    def __init__(self, client: Any) -> None:
        self._client = client
        self._buffer: list[str] | None = None

    @classmethod
    def connect(
        cls,
        url: str,
        *,
        namespace: str,
        database: str,
        username: str | None = None,
        password: str | None = None,
        client_factory: Callable[[str], Any] = Surreal,
    ) -> SurrealConnection:
        """Open, sign in and select ``namespace``/``database``."""
        try:
            client = client_factory(url)
            if username:
                client.signin({"username": username, "password": password or ""})
            client.use(namespace, database)
        except Exception as exc:
            raise ConnectivityError(f"Cannot connect to {url}: {exc}", cause=exc).with_context(
                url=url
            ) from exc
        logger.debug("connection.opened", url=url, namespace=namespace, database=database)
        return cls(client)

    @classmethod
    def from_settings(cls, settings: MigrationSettings) -> SurrealConnection:
        return cls.connect(
            settings.url,
            namespace=settings.namespace,
            database=settings.database,
            username=settings.username,
            password=settings.password,
        )

    # ------------------------------------------------------------------
    # DefinitionConnection
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._buffer is not None

    def execute(self, statement: str) -> Any:
        statement = statement.strip().rstrip(";")
        if self._buffer is not None:
            self._buffer.append(statement)
            return None
        results = self._query(statement + ";")
        self._raise_for_errors(results)
        return results[-1].get("result") if results else None

    def begin(self) -> None:
        if self._buffer is not None:
            raise DatabaseError("A transaction is already open")
        self._buffer = []

    def commit(self) -> None:
        if self._buffer is None:
            raise DatabaseError("No transaction is open")
        statements, self._buffer = self._buffer, None
        if not statements:
            return
        body = "".join(f"{statement};\n" for statement in statements)
        results = self._query(f"BEGIN TRANSACTION;\n{body}COMMIT TRANSACTION;")
        # Some server versions also report BEGIN and COMMIT.
        if len(results) == len(statements) + 2:
            results = results[1:-1]
        self._raise_for_errors(results)

    def rollback(self) -> None:
        self._buffer = None

    def select_rows(self, table: str) -> list[dict[str, Any]]:
        results = self._query(f"SELECT * FROM {table};")
        try:
            self._raise_for_errors(results)
        except StatementError as exc:
            if _MISSING_TABLE_MARKER in str(exc):
                return []
            raise
        rows = results[0].get("result") if results else None
        return [dict(row) for row in rows or []]

    def insert_row(self, table: str, row: dict[str, Any]) -> None:
        self.execute(f"CREATE {table} CONTENT {json.dumps(row, default=str)}")

    def close(self) -> None:
        self._buffer = None
        try:
            self._client.close()
        except _TRANSPORT_ERRORS as exc:
            logger.warning("connection.close_failed", error=str(exc))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _query(self, sql: str) -> list[dict[str, Any]]:
        try:
            response = self._client.query_raw(sql)
        except _TRANSPORT_ERRORS as exc:
            raise ConnectivityError(f"Lost connection: {exc}", cause=exc) from exc

        if isinstance(response, dict):
            if response.get("error"):
                error = response["error"]
                message = error.get("message") if isinstance(error, dict) else error
                raise StatementError(str(message))
            response = response.get("result", [])
        return list(response or [])

    @staticmethod
    def _raise_for_errors(results: list[dict[str, Any]]) -> None:
        for index, item in enumerate(results):
            if item.get("status") != "ERR":
                continue
            detail = str(item.get("result") or item.get("detail") or "statement failed")
            if _CASCADE_MARKER in detail:
                continue
            raise StatementError(detail, statement_index=index)
