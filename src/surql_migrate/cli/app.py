"""
Root Typer application for the surql-migrate CLI.

Root options override ``SURQL_MIGRATE_*`` environment settings and are
handed to every command through ``ctx.obj``.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from typer import Typer

from surql_migrate.cli import migrate
from surql_migrate.cli.scaffold import scaffold_project
from surql_migrate.cli.utils import report_error
from surql_migrate.core.errors import InvalidConfigError
from surql_migrate.core.logging import configure_logging
from surql_migrate.core.settings import MigrationSettings

app = Typer(
    name="surql-migrate",
    help="surql-migrate: schema migrations for SurrealDB.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from surql_migrate import __version__

        try:
            v = pkg_version("surql-migrate")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"surql-migrate {v}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    project_dir: Path | None = typer.Option(
        None, "--project-dir", "-p", help="Definitions project root (default: current directory)"
    ),
    url: str | None = typer.Option(None, "--url", help="SurrealDB endpoint"),
    namespace: str | None = typer.Option(None, "--ns", help="Namespace"),
    database: str | None = typer.Option(None, "--db", help="Database"),
    username: str | None = typer.Option(None, "--username", "-u", help="User to sign in as"),
    password: str | None = typer.Option(None, "--password", help="Password for --username"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON on stderr"),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """surql-migrate CLI: generate, apply and inspect schema migrations."""
    overrides = {
        "project_dir": project_dir,
        "url": url,
        "namespace": namespace,
        "database": database,
        "username": username,
        "password": password,
        "log_level": log_level,
    }
    try:
        settings = MigrationSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(part) for part in first["loc"])
        error = InvalidConfigError(key, first.get("input"), f"Invalid setting {key}: {first['msg']}")
        raise typer.Exit(code=report_error(error)) from exc

    configure_logging(level=settings.log_level, json_format=json_logs, cache_loggers=False)
    ctx.obj = settings


# ── Command registration ─────────────────────────────────────────────────

app.command("diff")(migrate.diff)
app.command("apply")(migrate.apply)
app.command("status")(migrate.status)
app.command("list")(migrate.list_applied)
app.command("scaffold")(scaffold_project)
