"""Migration script writer.

Turns a resolved statement sequence into a new migration unit and advances
the baseline snapshot, both or neither:

1. The unit folder (``up.surql``, ``down.surql``, ``snapshot.json``) is
   written into a hidden staging folder and renamed into place.
2. The baseline is written to a hidden temporary file and ``os.replace``-d
   over the old one.
3. If step 2 fails the unit folder is removed again. If the process dies
   between the two renames, the unit's embedded snapshot lets
   :class:`~surql_migrate.schema.snapshot.SnapshotStore` recover.

Temporary artefacts are removed on every failure path.
"""

from __future__ import annotations

import os
import shutil
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from surql_migrate.core.errors import StorageError
from surql_migrate.core.logging import get_logger
from surql_migrate.core.timestamps import mint_version
from surql_migrate.migrations.units import (
    DOWN_SCRIPT,
    UP_SCRIPT,
    MigrationUnit,
    discover_units,
    folder_name,
    slugify,
)
from surql_migrate.schema.diff import Statement, reverse_statements
from surql_migrate.schema.model import SchemaSnapshot
from surql_migrate.schema.snapshot import UNIT_SNAPSHOT_FILE, encode_snapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class DiffResult:
    """Outcome of a diff: the statements, the new baseline and the unit."""

    statements: tuple[Statement, ...]
    snapshot: SchemaSnapshot
    unit: MigrationUnit | None = None

    @property
    def in_sync(self) -> bool:
        return not self.statements


def render_script(statements: Sequence[Statement], header: str | None = None) -> str:
    lines = [f"-- {header}"] if header else []
    lines += [f"{statement.text};" for statement in statements]
    return "\n".join(lines) + "\n"


def _temporary_sibling(target: Path) -> Path:
    return target.parent / f".{target.name}.{uuid.uuid4().hex[:8]}.tmp"


def _remove(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)
    elif path.exists():
        path.unlink(missing_ok=True)


@contextmanager
def staged_directory(target: Path) -> Iterator[Path]:
    """Yield a hidden staging folder that is renamed to ``target`` on success."""
    staging = _temporary_sibling(target)
    staging.mkdir(parents=True)
    try:
        yield staging
        if target.exists():
            raise StorageError(f"{target} already exists").with_context(file=str(target))
        os.replace(staging, target)
    except BaseException:
        _remove(staging)
        raise


@contextmanager
def staged_file(target: Path) -> Iterator[Path]:
    """Yield a hidden temporary file that atomically replaces ``target`` on success."""
    temporary = _temporary_sibling(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        yield temporary
        os.replace(temporary, target)
    except BaseException:
        _remove(temporary)
        raise


def write_migration(
    statements: Sequence[Statement],
    snapshot: SchemaSnapshot,
    *,
    migrations_dir: Path | str,
    snapshot_path: Path | str,
    name: str | None = None,
    now: datetime | None = None,
) -> DiffResult:
    """
    Persist ``statements`` as a new unit and make ``snapshot`` the baseline.

    An empty sequence is a no-op: nothing is written and the returned
    result reports ``in_sync``.
    """
    migrations_dir = Path(migrations_dir)
    snapshot_path = Path(snapshot_path)
    if not statements:
        logger.info("diff.in_sync")
        return DiffResult((), snapshot)

    version = mint_version((u.version for u in discover_units(migrations_dir)), now)
    slug = slugify(name) if name else None
    baseline = snapshot.with_version(version)
    header = f"{version} {slug}" if slug else version
    forward = render_script(statements, header)
    reverse = render_script(reverse_statements(statements), f"{header} (reverse)")
    encoded = encode_snapshot(baseline)
    target = migrations_dir / folder_name(version, slug)

    try:
        with staged_directory(target) as staging:
            (staging / UP_SCRIPT).write_text(forward, encoding="utf-8")
            (staging / DOWN_SCRIPT).write_text(reverse, encoding="utf-8")
            (staging / UNIT_SNAPSHOT_FILE).write_text(encoded, encoding="utf-8")
        try:
            with staged_file(snapshot_path) as temporary:
                temporary.write_text(encoded, encoding="utf-8")
        except BaseException:
            _remove(target)
            raise
    except OSError as exc:
        raise StorageError(f"Cannot write migration {version}: {exc}", cause=exc).with_context(
            version=version, file=str(target)
        ) from exc

    unit = MigrationUnit(version=version, forward=forward, reverse=reverse, name=slug, path=target)
    logger.info(
        "migration.written",
        version=version,
        statements=len(statements),
        path=str(target),
    )
    return DiffResult(tuple(statements), baseline, unit)
