"""Tests for on-disk migration units."""

from __future__ import annotations

from pathlib import Path

import pytest

from surql_migrate.core.errors import StorageError
from surql_migrate.migrations.units import (
    MigrationUnit,
    discover_units,
    folder_name,
    load_unit,
    slugify,
    split_folder_name,
)


def make_unit(root: Path, folder: str, up: str = "DEFINE TABLE t;\n", down: str | None = None) -> Path:
    path = root / folder
    path.mkdir(parents=True)
    (path / "up.surql").write_text(up, encoding="utf-8")
    if down is not None:
        (path / "down.surql").write_text(down, encoding="utf-8")
    return path


class TestNames:
    def test_slugify(self):
        assert slugify("Add Customer!") == "add_customer"
        assert slugify("  retype -- age ") == "retype_age"

    def test_folder_name(self):
        assert folder_name("20240101_120000") == "20240101_120000"
        assert folder_name("20240101_120000", "add_customer") == "20240101_120000_add_customer"

    @pytest.mark.parametrize(
        ("folder", "expected"),
        [
            ("20240101_120000", ("20240101_120000", None)),
            ("20240101_120000_add_customer", ("20240101_120000", "add_customer")),
            ("20240101_120000x", None),
            ("20241301_120000", None),
            ("notes", None),
        ],
    )
    def test_split_folder_name(self, folder, expected):
        assert split_folder_name(folder) == expected


class TestMigrationUnit:
    def test_statements_split_at_top_level(self):
        unit = MigrationUnit(
            version="20240101_120000",
            forward="-- header\nDEFINE TABLE t;\nDEFINE EVENT e ON TABLE t WHEN true THEN { CREATE a; CREATE b; };\n",
        )
        assert unit.statements == (
            "DEFINE TABLE t",
            "DEFINE EVENT e ON TABLE t WHEN true THEN { CREATE a; CREATE b; }",
        )
        assert unit.reverse_statements == ()

    def test_checksum_ignores_line_endings(self):
        lf = MigrationUnit("20240101_120000", "DEFINE TABLE t;\nDEFINE TABLE u;\n")
        crlf = MigrationUnit("20240101_120000", "DEFINE TABLE t;\r\nDEFINE TABLE u;\r\n")
        assert lf.checksum == crlf.checksum
        assert len(lf.checksum) == 64
        assert lf.checksum != MigrationUnit("20240101_120000", "DEFINE TABLE v;\n").checksum


class TestDiscovery:
    def test_ascending_order_and_names(self, tmp_path: Path):
        make_unit(tmp_path, "20240102_080000_second")
        make_unit(tmp_path, "20240101_120000_first", down="REMOVE TABLE t;\n")
        units = discover_units(tmp_path)
        assert [u.version for u in units] == ["20240101_120000", "20240102_080000"]
        assert units[0].name == "first"
        assert units[0].reverse_statements == ("REMOVE TABLE t",)
        assert units[0].path == tmp_path / "20240101_120000_first"

    def test_ignores_staging_and_foreign_folders(self, tmp_path: Path):
        make_unit(tmp_path, "20240101_120000")
        make_unit(tmp_path, ".20240102_080000.deadbeef.tmp")
        (tmp_path / "README.md").write_text("notes")
        (tmp_path / "drafts").mkdir()
        assert [u.version for u in discover_units(tmp_path)] == ["20240101_120000"]

    def test_missing_folder_is_empty(self, tmp_path: Path):
        assert discover_units(tmp_path / "migrations") == []

    def test_duplicate_versions_fail(self, tmp_path: Path):
        make_unit(tmp_path, "20240101_120000_a")
        make_unit(tmp_path, "20240101_120000_b")
        with pytest.raises(StorageError, match="Duplicate migration version"):
            discover_units(tmp_path)

    def test_missing_up_script(self, tmp_path: Path):
        (tmp_path / "20240101_120000").mkdir()
        with pytest.raises(StorageError) as info:
            load_unit(tmp_path / "20240101_120000")
        assert info.value.context.version == "20240101_120000"
