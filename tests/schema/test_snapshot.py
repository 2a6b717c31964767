"""Tests for snapshot encoding and the snapshot store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from surql_migrate.core.errors import SnapshotError
from surql_migrate.schema.model import SchemaSnapshot
from surql_migrate.schema.parser import SourceFile, parse_definitions
from surql_migrate.schema.snapshot import SnapshotStore, decode_snapshot, encode_snapshot, read_snapshot

BLOG_STATEMENTS = [
    "DEFINE ANALYZER simple TOKENIZERS blank, class FILTERS lowercase",
    "DEFINE TABLE user SCHEMAFULL PERMISSIONS FOR select FULL FOR create, update NONE",
    "DEFINE FIELD email ON user TYPE string ASSERT string::is::email($value)",
    "DEFINE FIELD tags ON user TYPE option<array<string>> DEFAULT []",
    "DEFINE TABLE post SCHEMALESS COMMENT 'posts'",
    "DEFINE FIELD author ON post TYPE record(user)",
    "DEFINE FIELD body ON post TYPE string",
    "DEFINE INDEX body_search ON post FIELDS body SEARCH ANALYZER simple BM25",
    """DEFINE EVENT notify ON post WHEN $event = "CREATE" THEN {
    CREATE notification SET post = $after.id;
    UPDATE user SET posts += 1 WHERE id = $after.author;
}""",
]
BLOG = ";\n".join(BLOG_STATEMENTS) + ";\n"


@pytest.fixture()
def blog() -> SchemaSnapshot:
    return parse_definitions([SourceFile("schemas/blog.surql", "schemas", BLOG)])


class TestEncoding:
    def test_round_trip_is_equal(self, blog):
        decoded = decode_snapshot(encode_snapshot(blog.with_version("20240101_120000")))
        assert decoded == blog
        assert decoded.version == "20240101_120000"
        assert [str(k) for k in decoded] == [str(k) for k in blog]

    def test_encoding_is_deterministic(self, blog):
        shuffled = parse_definitions(
            [SourceFile("x.surql", "schemas", ";\n".join(reversed(BLOG_STATEMENTS)))]
        )
        assert encode_snapshot(shuffled) == encode_snapshot(blog)

    def test_artefact_shape(self, blog):
        payload = json.loads(encode_snapshot(blog))
        assert payload["format"] == 1
        assert payload["version"] is None
        first = payload["objects"][0]
        assert first == {
            "kind": "analyzer",
            "table": None,
            "name": "simple",
            "definition": "DEFINE ANALYZER simple TOKENIZERS blank, class FILTERS lowercase;",
        }

    def test_regex_assert_round_trips(self):
        source = r"DEFINE TABLE country; DEFINE FIELD code ON country TYPE string ASSERT $value = /^\d{3}$/;"
        snapshot = parse_definitions([SourceFile("schemas/country.surql", "schemas", source)])
        encoded = encode_snapshot(snapshot)
        assert r"/^\\d{3}$/" in encoded
        assert decode_snapshot(encoded) == snapshot

    def test_empty_snapshot(self):
        assert decode_snapshot(encode_snapshot(SchemaSnapshot.empty())) == SchemaSnapshot.empty()


class TestDecodeErrors:
    def test_invalid_json(self):
        with pytest.raises(SnapshotError, match="not valid JSON"):
            decode_snapshot("{", "schema.snapshot.json")

    def test_unknown_format(self):
        with pytest.raises(SnapshotError, match="unsupported format"):
            decode_snapshot(json.dumps({"format": 99, "objects": []}))

    def test_malformed_entry(self):
        with pytest.raises(SnapshotError, match="malformed entry"):
            decode_snapshot(json.dumps({"format": 1, "objects": [{"kind": "table"}]}))

    def test_identity_mismatch(self):
        entry = {"kind": "table", "table": None, "name": "a", "definition": "DEFINE TABLE b;"}
        with pytest.raises(SnapshotError, match="does not match"):
            decode_snapshot(json.dumps({"format": 1, "objects": [entry]}))

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(SnapshotError) as info:
            read_snapshot(tmp_path / "nope.json")
        assert info.value.context.file.endswith("nope.json")


class TestSnapshotStore:
    def test_missing_baseline_is_empty(self, tmp_path: Path):
        store = SnapshotStore(tmp_path / "schema.snapshot.json", tmp_path / "migrations")
        assert store.load() == SchemaSnapshot.empty()

    def test_reads_baseline(self, tmp_path: Path, blog):
        path = tmp_path / "schema.snapshot.json"
        path.write_text(encode_snapshot(blog.with_version("20240101_120000")))
        store = SnapshotStore(path, tmp_path / "migrations")
        loaded = store.load()
        assert loaded == blog
        assert loaded.version == "20240101_120000"

    def test_recovers_from_newer_unit_snapshot(self, tmp_path: Path, blog):
        path = tmp_path / "schema.snapshot.json"
        path.write_text(encode_snapshot(SchemaSnapshot.empty().with_version("20240101_120000")))
        unit = tmp_path / "migrations" / "20240102_090000_blog"
        unit.mkdir(parents=True)
        (unit / "snapshot.json").write_text(encode_snapshot(blog.with_version("20240102_090000")))

        loaded = SnapshotStore(path, tmp_path / "migrations").load()
        assert loaded == blog
        assert loaded.version == "20240102_090000"

    def test_staging_folders_are_ignored(self, tmp_path: Path, blog):
        staging = tmp_path / "migrations" / ".20240102_090000.ab12cd34.tmp"
        staging.mkdir(parents=True)
        (staging / "snapshot.json").write_text(encode_snapshot(blog))
        store = SnapshotStore(tmp_path / "schema.snapshot.json", tmp_path / "migrations")
        assert store.load() == SchemaSnapshot.empty()
