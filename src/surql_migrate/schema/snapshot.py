"""Baseline snapshot encoding and store.

The snapshot is stored as JSON holding, per object, its identity and its
canonical ``DEFINE`` statement. Loading re-parses every definition, so a
snapshot written and read back is equal to the original by construction
of the parser rather than by a second hand-maintained codec.

Every migration unit written by the engine embeds the snapshot it
produced. ``SnapshotStore.load()`` prefers the newest embedded snapshot
when the baseline file lags behind it, which is the state left by a crash
between the unit rename and the baseline replace.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from surql_migrate.core.errors import ParseError, SnapshotError
from surql_migrate.core.logging import get_logger
from surql_migrate.core.timestamps import is_version
from surql_migrate.schema.model import ObjectKind, SchemaSnapshot
from surql_migrate.schema.parser import assemble, parse_statement

logger = get_logger(__name__)

SNAPSHOT_FORMAT = 1
UNIT_SNAPSHOT_FILE = "snapshot.json"


def encode_snapshot(snapshot: SchemaSnapshot) -> str:
    """Serialise ``snapshot`` to its JSON artefact text."""
    payload = {
        "format": SNAPSHOT_FORMAT,
        "version": snapshot.version,
        "objects": [
            {
                "kind": obj.kind.value,
                "table": obj.table or None,
                "name": obj.name,
                "definition": obj.definition() + ";",
            }
            for obj in snapshot.objects.values()
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def decode_snapshot(text: str, file: str | None = None) -> SchemaSnapshot:
    """Parse a snapshot artefact; ``file`` is only used in error messages."""
    try:
        payload: dict[str, Any] = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"Snapshot {file} is not valid JSON: {exc}", cause=exc).with_context(
            file=file
        ) from exc

    if not isinstance(payload, dict) or payload.get("format") != SNAPSHOT_FORMAT:
        raise SnapshotError(f"Snapshot {file} has an unsupported format").with_context(file=file)

    objects = []
    for entry in payload.get("objects", []):
        try:
            definition = entry["definition"]
            expected = (ObjectKind(entry["kind"]), entry.get("table") or "", entry["name"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SnapshotError(f"Snapshot {file} has a malformed entry: {exc}", cause=exc).with_context(
                file=file
            ) from exc
        obj = parse_statement(definition, file)
        if (obj.kind, obj.table, obj.name) != expected:
            raise SnapshotError(
                f"Snapshot {file} entry {entry['name']!r} does not match its definition"
            ).with_context(file=file)
        objects.append(obj)
    return assemble(objects, payload.get("version"))


def read_snapshot(path: Path) -> SchemaSnapshot:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SnapshotError(f"Cannot read snapshot {path}: {exc}", cause=exc).with_context(
            file=str(path)
        ) from exc
    return decode_snapshot(text, str(path))


class SnapshotStore:
    """Reads the baseline snapshot that the next diff is computed against.

    Parameters
    ----------
    path
        The baseline artefact (``schema.snapshot.json``).
    migrations_dir
        Folder of migration units, consulted for embedded snapshots.
    """

    def __init__(self, path: Path | str, migrations_dir: Path | str) -> None:
        self.path = Path(path)
        self.migrations_dir = Path(migrations_dir)

    def load(self) -> SchemaSnapshot:
        """Return the current baseline (empty when nothing was generated yet)."""
        baseline = read_snapshot(self.path) if self.path.exists() else SchemaSnapshot.empty()
        embedded = self._latest_embedded()
        if embedded is None:
            return baseline

        version, unit_snapshot_path = embedded
        if baseline.version is None or version > baseline.version:
            logger.warning(
                "snapshot.recovered",
                baseline=baseline.version,
                unit=version,
                path=str(unit_snapshot_path),
            )
            try:
                return read_snapshot(unit_snapshot_path).with_version(version)
            except ParseError as exc:
                raise SnapshotError(
                    f"Embedded snapshot of migration {version} is unreadable: {exc}", cause=exc
                ).with_context(version=version, file=str(unit_snapshot_path)) from exc
        return baseline

    def _latest_embedded(self) -> tuple[str, Path] | None:
        if not self.migrations_dir.is_dir():
            return None
        candidates = []
        for folder in self.migrations_dir.iterdir():
            version = folder.name[:15]
            if folder.name.startswith(".") or not is_version(version):
                continue
            snapshot_path = folder / UNIT_SNAPSHOT_FILE
            if snapshot_path.is_file():
                candidates.append((version, snapshot_path))
        return max(candidates, default=None)
