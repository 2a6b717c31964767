"""Project scaffolding from the bundled templates."""

from __future__ import annotations

from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

from surql_migrate.core.errors import InvalidConfigError, StorageError
from surql_migrate.core.logging import get_logger
from surql_migrate.core.settings import MigrationSettings

logger = get_logger(__name__)

_TEMPLATE_PACKAGE = "surql_migrate.templates"


def available_templates() -> list[str]:
    root = resources.files(_TEMPLATE_PACKAGE)
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir() and not entry.name.startswith("_"))


def _walk(node: Traversable, prefix: Path) -> list[tuple[Path, Traversable]]:
    files = []
    for entry in sorted(node.iterdir(), key=lambda e: e.name):
        if entry.is_dir():
            files.extend(_walk(entry, prefix / entry.name))
        else:
            files.append((prefix / entry.name, entry))
    return files


def scaffold(template: str, settings: MigrationSettings, force: bool = False) -> list[Path]:
    """
    Copy ``template`` into ``settings.project_dir`` and create the layout folders.

    Existing files are never overwritten unless ``force`` is set.

    Raises:
        InvalidConfigError: unknown template name.
        StorageError: a target file exists, or the copy failed.
    """
    if template not in available_templates():
        raise InvalidConfigError(
            "template",
            template,
            f"Unknown template {template!r} (available: {', '.join(available_templates())})",
        )

    root = settings.project_dir
    files = _walk(resources.files(_TEMPLATE_PACKAGE) / template, Path())
    layout = {
        settings.schemas_dir: root / settings.schemas_dir,
        settings.events_dir: root / settings.events_dir,
        settings.migrations_dir: root / settings.migrations_dir,
    }
    targets = [(_relocate(relative, settings), source) for relative, source in files]

    if not force:
        clashes = [str(root / relative) for relative, _ in targets if (root / relative).exists()]
        if clashes:
            raise StorageError(f"Refusing to overwrite {', '.join(clashes)}").with_context(
                file=clashes[0]
            )

    written: list[Path] = []
    try:
        for folder in layout.values():
            folder.mkdir(parents=True, exist_ok=True)
        for relative, source in targets:
            destination = root / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(source.read_bytes())
            written.append(destination)
    except OSError as exc:
        raise StorageError(f"Cannot scaffold into {root}: {exc}", cause=exc).with_context(
            file=str(root)
        ) from exc

    logger.info("project.scaffolded", template=template, files=len(written), path=str(root))
    return written


def _relocate(relative: Path, settings: MigrationSettings) -> Path:
    """Map the template's ``schemas``/``events`` folders to the configured names."""
    if not relative.parts:
        return relative
    renamed = {"schemas": settings.schemas_dir, "events": settings.events_dir}
    head = renamed.get(relative.parts[0], relative.parts[0])
    return Path(head, *relative.parts[1:])
