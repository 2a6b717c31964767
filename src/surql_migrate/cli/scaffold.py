"""
CLI: ``surql-migrate scaffold``, create a project from a bundled template.
"""

from __future__ import annotations

import typer

from surql_migrate.cli.utils import console, get_settings, handle_errors
from surql_migrate.scaffold import scaffold


def scaffold_project(
    ctx: typer.Context,
    template: str = typer.Argument("empty", help="Template name (empty, blog)"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing files"),
) -> None:
    """Create the definitions layout from a bundled template."""
    settings = get_settings(ctx)
    with handle_errors():
        written = scaffold(template, settings, force=force)

    console.print(f"Scaffolded [bold]{template}[/bold] into {settings.project_dir}")
    for path in written:
        console.print(f"  [green]+[/green] {path.relative_to(settings.project_dir)}")

