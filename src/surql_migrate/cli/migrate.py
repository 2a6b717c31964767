"""
CLI: ``surql-migrate diff | apply | status | list``.
"""

from __future__ import annotations

import typer

from surql_migrate.cli.utils import (
    EXIT_FAILURE,
    console,
    err_console,
    handle_errors,
    make_project,
    output_json,
    print_table,
)


def diff(
    ctx: typer.Context,
    name: str | None = typer.Option(None, "--name", "-n", help="Human-readable migration name"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Generate a migration from definition changes since the last diff."""
    with handle_errors():
        result = make_project(ctx).diff(name=name)

    rows = [
        {"operation": s.operation.value, "kind": s.target.kind.value, "object": s.target.qualified_name}
        for s in result.statements
    ]
    if json_out:
        output_json({"migration": str(result.unit) if result.unit else None, "statements": rows})
        return
    if result.in_sync:
        console.print("[green]Already in sync[/green], no migration written.")
        return
    print_table(rows, title=f"Migration {result.unit}")
    console.print(f"Wrote [bold]{result.unit.path}[/bold]")


def apply(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, "--dry-run", help="Show pending migrations without applying"),
    up_to: str | None = typer.Option(None, "--up-to", help="Apply up to and including this version"),
    validate_order: bool = typer.Option(
        False, "--validate-order", help="Fail if a pending migration is older than the last applied"
    ),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Apply pending migrations to the database."""
    project = make_project(ctx)
    with handle_errors():
        drift = project.pending_changes()
        if drift:
            err_console.print(
                f"[yellow]Warning[/yellow]: {len(drift)} definition change(s) have no migration yet; "
                "run [bold]diff[/bold] first to include them."
            )
        if up_to is not None:
            result = project.up_to(up_to, dry_run=dry_run, validate_order=validate_order)
        else:
            result = project.up(dry_run=dry_run, validate_order=validate_order)

    if json_out:
        output_json(result)
        return
    if result.in_sync:
        console.print("[green]Database is up to date.[/green]")
    elif dry_run:
        console.print("[bold]Would apply:[/bold]")
        for version in result.planned:
            console.print(f"  {version}")
    else:
        console.print(f"Applied [bold]{len(result.applied)}[/bold] migration(s):")
        for version in result.applied:
            console.print(f"  [green]✓[/green] {version}")


def status(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Compare on-disk migrations with the database ledger."""
    with handle_errors():
        report = make_project(ctx).status()

    if json_out:
        output_json(report.units)
    else:
        rows = [
            {
                "version": unit.version,
                "name": unit.name,
                "state": unit.state,
                "applied_at": unit.applied_at,
            }
            for unit in report.units
        ]
        print_table(rows, title="Migration Status")
        console.print(
            f"{len(report.applied)} applied, {len(report.pending)} pending, "
            f"{len(report.conflicts)} conflict(s), {len(report.missing)} missing on disk"
        )

    if not report.healthy:
        for unit in report.conflicts:
            err_console.print(
                f"[bold red]Error[/bold red] (ledger): Migration {unit.version} was edited after it was applied"
            )
        raise typer.Exit(code=EXIT_FAILURE)


def list_applied(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List migrations recorded as applied in the database."""
    with handle_errors():
        entries = make_project(ctx).list()

    if json_out:
        output_json(entries)
        return
    rows = [
        {"version": e.version, "checksum": e.checksum[:12], "applied_at": e.applied_at}
        for e in entries
    ]
    print_table(rows, title="Applied Migrations")
