"""
CLI utility helpers: output formatting, error reporting and connection management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from surql_migrate.adapters.surrealdb import SurrealConnection
from surql_migrate.core.errors import ConnectivityError, MigrationError
from surql_migrate.core.protocols import DefinitionConnection
from surql_migrate.core.settings import MigrationSettings
from surql_migrate.project import MigrationProject

console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_UNREACHABLE = 2


# ── Connection helper ────────────────────────────────────────────────────


def get_connection(settings: MigrationSettings) -> DefinitionConnection:
    """Open a connection to the configured database."""
    return SurrealConnection.from_settings(settings)


def get_settings(ctx: typer.Context) -> MigrationSettings:
    settings = ctx.obj
    if not isinstance(settings, MigrationSettings):
        settings = MigrationSettings()
    return settings


def make_project(ctx: typer.Context) -> MigrationProject:
    """Create a ``MigrationProject`` for the root options of ``ctx``."""
    # Resolved per call so tests can swap ``get_connection``.
    return MigrationProject(get_settings(ctx), connection_factory=lambda s: get_connection(s))


# ── Error reporting ──────────────────────────────────────────────────────


def report_error(error: MigrationError) -> int:
    """Print ``error`` naming its component and return the exit code."""
    context = error.context
    err_console.print(f"[bold red]Error[/bold red] ({context.component}): {error.message}")
    for label, value in (
        ("version", context.version),
        ("file", context.file),
        ("location", context.location),
        ("statement", context.statement_index),
    ):
        if value is not None:
            err_console.print(f"  [cyan]{label}[/cyan]: {value}")
    if error.retryable:
        err_console.print("[dim]The database was unreachable; re-run the command once it is back.[/dim]")
    return EXIT_UNREACHABLE if isinstance(error, ConnectivityError) else EXIT_FAILURE


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn any ``MigrationError`` into a red message and a non-zero exit."""
    try:
        yield
    except MigrationError as exc:
        raise typer.Exit(code=report_error(exc)) from exc


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(data: Any) -> None:
    payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "", styles: dict[str, str] | None = None) -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold", style=(styles or {}).get(col))
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)
