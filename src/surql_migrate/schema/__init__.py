"""Definition parsing, canonical model, snapshots and diffing.

Modules
-------
tokens     SurrealQL tokenizer and statement splitter
model      SchemaObject, TypeExpr and SchemaSnapshot
parser     DEFINE statements → SchemaObject
snapshot   Baseline artefact encoding and SnapshotStore
diff       resolve_diff(): two snapshots → ordered statements
"""

from surql_migrate.schema.diff import Operation, Statement, resolve_diff, reverse_statements
from surql_migrate.schema.model import ObjectKey, ObjectKind, SchemaObject, SchemaSnapshot
from surql_migrate.schema.parser import SourceFile, discover_sources, parse_definitions
from surql_migrate.schema.snapshot import SnapshotStore, decode_snapshot, encode_snapshot

__all__ = [
    "ObjectKey",
    "ObjectKind",
    "Operation",
    "SchemaObject",
    "SchemaSnapshot",
    "SnapshotStore",
    "SourceFile",
    "Statement",
    "decode_snapshot",
    "discover_sources",
    "encode_snapshot",
    "parse_definitions",
    "resolve_diff",
    "reverse_statements",
]
