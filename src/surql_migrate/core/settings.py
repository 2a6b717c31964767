"""Settings for surql-migrate.

Configuration is explicit, validated and environment-driven. Every field
can be set through an ``SURQL_MIGRATE_``-prefixed environment variable or a
``.env`` file; command-line options override both.

Examples:
    >>> from surql_migrate.core.settings import MigrationSettings
    >>> settings = MigrationSettings(project_dir="./db")
    >>> settings.migrations_path.name
    'migrations'

Tags:
    settings, configuration, pydantic, environment, surql-migrate
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MigrationSettings(BaseSettings):
    """Connection and project-layout settings.

    Fields
    ──────
    url            : SurrealDB endpoint (``ws://`` or ``http://``)
    namespace      : Namespace selected after sign-in
    database       : Database selected after sign-in
    username       : Root/namespace user (optional)
    password       : Password for ``username`` (optional)
    project_dir    : Root of the definitions project
    schemas_dir    : Category folder for tables and fields
    events_dir     : Category folder for events
    indexes_dir    : Category folder for indexes
    migrations_dir : Folder holding one sub-folder per migration unit
    snapshot_file  : Baseline snapshot artefact, relative to project_dir
    log_level      : Structlog log level
    """

    model_config = SettingsConfigDict(
        env_prefix="SURQL_MIGRATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Connection ───────────────────────────────────────────────
    url: str = "ws://localhost:8000/rpc"
    namespace: str = "test"
    database: str = "test"
    username: str | None = "root"
    password: str | None = "root"

    # ── Project layout ───────────────────────────────────────────
    project_dir: Path = Field(default_factory=Path.cwd)
    schemas_dir: str = "schemas"
    events_dir: str = "events"
    indexes_dir: str = "indexes"
    migrations_dir: str = "migrations"
    snapshot_file: str = "schema.snapshot.json"

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def category_dirs(self) -> dict[str, Path]:
        """Definition category name → folder, in reading order."""
        return {
            "schemas": self.project_dir / self.schemas_dir,
            "events": self.project_dir / self.events_dir,
            "indexes": self.project_dir / self.indexes_dir,
        }

    @property
    def migrations_path(self) -> Path:
        return self.project_dir / self.migrations_dir

    @property
    def snapshot_path(self) -> Path:
        return self.project_dir / self.snapshot_file
