"""On-disk migration units.

Each unit is a folder named by its version token (optionally followed by a
human name) holding a forward script, an optional reverse script and, for
generated units, the snapshot the unit produced::

    migrations/
      20240101_120000_add_customer/
        up.surql
        down.surql
        snapshot.json

Folders starting with ``.`` are staging areas of an interrupted write and
are never treated as units.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path

from surql_migrate.core.errors import StorageError
from surql_migrate.core.hashing import compute_checksum
from surql_migrate.core.timestamps import is_version
from surql_migrate.schema.tokens import split_script

UP_SCRIPT = "up.surql"
DOWN_SCRIPT = "down.surql"

_NAME_CLEANUP = re.compile(r"[^A-Za-z0-9]+")


def slugify(name: str) -> str:
    """``"Add Customer!"`` → ``"add_customer"``."""
    return _NAME_CLEANUP.sub("_", name).strip("_").lower()


def folder_name(version: str, name: str | None = None) -> str:
    return f"{version}_{name}" if name else version


def split_folder_name(folder: str) -> tuple[str, str | None] | None:
    """Return ``(version, name)`` for a unit folder name, or None."""
    version, separator, name = folder[:15], folder[15:16], folder[16:]
    if not is_version(version) or separator not in ("", "_"):
        return None
    return version, name or None


@dataclass(frozen=True)
class MigrationUnit:
    """
    One immutable, versioned batch of statements.

    ``checksum`` covers the forward script only; it is what the ledger
    records and later verifies.
    """

    version: str
    forward: str
    reverse: str | None = None
    name: str | None = None
    path: Path | None = field(default=None, compare=False)

    @property
    def folder_name(self) -> str:
        return folder_name(self.version, self.name)

    @cached_property
    def checksum(self) -> str:
        return compute_checksum(self.forward)

    @cached_property
    def statements(self) -> tuple[str, ...]:
        return split_script(self.forward, self._script_path(UP_SCRIPT))

    @cached_property
    def reverse_statements(self) -> tuple[str, ...]:
        if self.reverse is None:
            return ()
        return split_script(self.reverse, self._script_path(DOWN_SCRIPT))

    def _script_path(self, script: str) -> str:
        base = self.path or Path(self.folder_name)
        return str(base / script)

    def __str__(self) -> str:
        return self.folder_name


def load_unit(folder: Path) -> MigrationUnit:
    parsed = split_folder_name(folder.name)
    if parsed is None:
        raise StorageError(f"{folder} is not a migration folder").with_context(file=str(folder))
    version, name = parsed
    up = folder / UP_SCRIPT
    down = folder / DOWN_SCRIPT
    try:
        forward = up.read_text(encoding="utf-8")
        reverse = down.read_text(encoding="utf-8") if down.exists() else None
    except OSError as exc:
        raise StorageError(f"Cannot read migration {folder.name}: {exc}", cause=exc).with_context(
            file=str(up), version=version
        ) from exc
    return MigrationUnit(version=version, forward=forward, reverse=reverse, name=name, path=folder)


def discover_units(migrations_dir: Path | str) -> list[MigrationUnit]:
    """Return every unit under ``migrations_dir`` in ascending version order."""
    root = Path(migrations_dir)
    if not root.is_dir():
        return []

    units: dict[str, MigrationUnit] = {}
    for folder in sorted(root.iterdir()):
        if not folder.is_dir() or folder.name.startswith("."):
            continue
        if split_folder_name(folder.name) is None:
            continue
        unit = load_unit(folder)
        if unit.version in units:
            raise StorageError(
                f"Duplicate migration version {unit.version}: "
                f"{units[unit.version].folder_name} and {unit.folder_name}"
            ).with_context(version=unit.version)
        units[unit.version] = unit
    return [units[version] for version in sorted(units)]
