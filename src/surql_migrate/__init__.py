"""
surql-migrate: schema migrations for SurrealDB.

Definition files (``DEFINE TABLE``, ``DEFINE FIELD``, ...) are the source of
truth. ``diff`` compares them with the baseline snapshot and writes a
versioned migration unit; ``apply`` runs pending units against the database
and records them in its ``script_migration`` ledger.

Quick start::

    from surql_migrate import MigrationProject, MigrationSettings

    project = MigrationProject(MigrationSettings(project_dir="./db"))
    project.diff(name="add customer")
    project.up()
"""

__version__ = "0.1.0"

from surql_migrate.core.errors import MigrationError
from surql_migrate.core.settings import MigrationSettings
from surql_migrate.migrations.runner import MigrationRunner
from surql_migrate.project import MigrationProject

__all__ = [
    "MigrationError",
    "MigrationProject",
    "MigrationRunner",
    "MigrationSettings",
    "__version__",
]
