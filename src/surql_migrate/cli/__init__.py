"""
CLI layer for surql-migrate.

Provides a Typer application whose commands delegate to
:class:`~surql_migrate.project.MigrationProject`. All engine logic lives in
the library; this package handles only terminal transport: argument
parsing, coloured output and table formatting.

Entry point::

    surql-migrate --help
"""

from surql_migrate.cli.app import app

__all__ = ["app"]
