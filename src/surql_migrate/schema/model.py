"""
Canonical schema model.

Manifesto:
    Definitions are compared as structure, never as text. Two files that
    differ only in whitespace, comments, clause order or the spelling of a
    type (``record(company)`` vs ``record<company>``) describe the same
    schema and must not produce a migration.

    - **Closed variant:** ``ObjectKind`` enumerates every object the engine
      understands; consumers match on it exhaustively
    - **Identity vs content:** ``ObjectKey`` identifies an object, the
      ordered property tuple describes it; raw source never takes part in
      equality
    - **Immutable:** Objects and snapshots are frozen values

Architecture:
    ::

        SchemaSnapshot (version, ordered ObjectKey → SchemaObject)
            └── SchemaObject (kind, name, table, properties, source)
                    ├── TypeExpr   FIELD ... TYPE option<record<company>>
                    └── Expr       every other clause value (token tuple)

Tags:
    schema, canonical-model, snapshot, surql-migrate
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import assert_never


class ObjectKind(str, Enum):
    """Every kind of schema object the engine understands."""

    TABLE = "table"
    FIELD = "field"
    EVENT = "event"
    INDEX = "index"
    ANALYZER = "analyzer"
    SCOPE = "scope"

    @property
    def keyword(self) -> str:
        return self.value.upper()

    @property
    def on_table(self) -> bool:
        """True for kinds that are declared ``ON TABLE <table>``."""
        return self in (ObjectKind.FIELD, ObjectKind.EVENT, ObjectKind.INDEX)

    @property
    def rank(self) -> int:
        """Creation tier: lower ranks are created first."""
        match self:
            case ObjectKind.ANALYZER:
                return 0
            case ObjectKind.SCOPE:
                return 1
            case ObjectKind.TABLE:
                return 2
            case ObjectKind.FIELD:
                return 3
            case ObjectKind.INDEX:
                return 4
            case ObjectKind.EVENT:
                return 5
            case _:
                assert_never(self)


@dataclass(frozen=True)
class ObjectKey:
    """Identity of a schema object: unique within its owning scope."""

    kind: ObjectKind
    name: str
    table: str = ""

    @property
    def sort_key(self) -> tuple[int, str, str]:
        return (self.kind.rank, self.table, self.name)

    @property
    def qualified_name(self) -> str:
        return f"{self.table}.{self.name}" if self.table else self.name

    def __str__(self) -> str:
        return f"{self.kind.value} {self.qualified_name}"


@dataclass(frozen=True)
class SourceLocation:
    file: str | None
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.file or '<source>'}:{self.line}:{self.column}"


@dataclass(frozen=True)
class Expr:
    """A clause value, compared by its token texts."""

    tokens: tuple[str, ...]
    text: str = field(default="", compare=False)

    def __str__(self) -> str:
        return self.text or " ".join(self.tokens)

    def words(self) -> list[str]:
        return [token.upper() for token in self.tokens]


@dataclass(frozen=True)
class TypeExpr:
    """
    Structured field type.

    ``name`` is the lower-cased type keyword (``string``, ``record``,
    ``option``) or a table name inside ``record<...>``. Unions use the
    name ``"|"`` with members sorted, so member order never matters.
    """

    name: str
    args: tuple[TypeExpr, ...] = ()

    UNION = "|"

    @classmethod
    def union(cls, members: Iterable[TypeExpr]) -> TypeExpr:
        flat: set[TypeExpr] = set()
        for member in members:
            flat.update(member.args if member.name == cls.UNION else (member,))
        ordered = tuple(sorted(flat, key=lambda m: m.render()))
        return ordered[0] if len(ordered) == 1 else cls(cls.UNION, ordered)

    def references(self) -> set[str]:
        """Table names referenced through ``record`` types, at any depth."""
        if self.name == "record":
            return {arg.name for arg in self.args}
        refs: set[str] = set()
        for arg in self.args:
            refs |= arg.references()
        return refs

    def render(self) -> str:
        if self.name == self.UNION:
            return " | ".join(arg.render() for arg in self.args)
        if not self.args:
            return self.name
        if self.name == "record":
            return f"record<{' | '.join(arg.name for arg in self.args)}>"
        return f"{self.name}<{', '.join(arg.render() for arg in self.args)}>"

    def __str__(self) -> str:
        return self.render()


PropertyValue = Expr | TypeExpr | None

_PLAIN_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_ident(name: str) -> str:
    if _PLAIN_IDENT.match(name):
        return name
    return "`" + name.replace("`", "\\`") + "`"


@dataclass(frozen=True)
class SchemaObject:
    """
    One schema object in canonical form.

    ``properties`` is an ordered tuple of ``(clause, value)`` pairs in the
    canonical clause order for the kind; flag clauses (``SCHEMAFULL``,
    ``UNIQUE``, ``READONLY``) carry ``None``.
    """

    kind: ObjectKind
    name: str
    table: str = ""
    properties: tuple[tuple[str, PropertyValue], ...] = ()
    source: str = field(default="", compare=False)
    location: SourceLocation | None = field(default=None, compare=False)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.kind, self.name, self.table)

    @property
    def parent(self) -> ObjectKey | None:
        """Key of the owning table for FIELD/EVENT/INDEX objects."""
        if self.kind.on_table:
            return ObjectKey(ObjectKind.TABLE, self.table)
        return None

    def get(self, clause: str) -> PropertyValue:
        for name, value in self.properties:
            if name == clause:
                return value
        return None

    def has(self, clause: str) -> bool:
        return any(name == clause for name, _ in self.properties)

    @property
    def field_type(self) -> TypeExpr | None:
        value = self.get("TYPE")
        return value if isinstance(value, TypeExpr) else None

    def references(self) -> list[ObjectKey]:
        """Objects (other than the owning table) this object depends on."""
        match self.kind:
            case ObjectKind.FIELD:
                type_expr = self.field_type
                names = type_expr.references() if type_expr else set()
                return [ObjectKey(ObjectKind.TABLE, name) for name in sorted(names)]
            case ObjectKind.TABLE:
                return [ObjectKey(ObjectKind.TABLE, name) for name in _relation_tables(self.get("TYPE"))]
            case ObjectKind.INDEX:
                analyzer = _search_analyzer(self.get("SEARCH"))
                return [ObjectKey(ObjectKind.ANALYZER, analyzer)] if analyzer else []
            case ObjectKind.EVENT | ObjectKind.ANALYZER | ObjectKind.SCOPE:
                return []
            case _:
                assert_never(self.kind)

    def definition(self) -> str:
        """Canonical ``DEFINE`` statement (without the trailing ``;``)."""
        name = self.name if self.kind is ObjectKind.FIELD else quote_ident(self.name)
        parts = ["DEFINE", self.kind.keyword, name]
        if self.kind.on_table:
            parts += ["ON", "TABLE", quote_ident(self.table)]
        for clause, value in self.properties:
            parts.append(clause if value is None else f"{clause} {value}")
        return " ".join(parts)

    def removal(self) -> str:
        """``REMOVE`` statement for this object (without the trailing ``;``)."""
        name = self.name if self.kind is ObjectKind.FIELD else quote_ident(self.name)
        statement = f"REMOVE {self.kind.keyword} {name}"
        if self.kind.on_table:
            statement += f" ON TABLE {quote_ident(self.table)}"
        return statement


def _relation_tables(value: PropertyValue) -> list[str]:
    """Tables named by ``TYPE RELATION IN a OUT b`` (or ``FROM``/``TO``)."""
    if not isinstance(value, Expr):
        return []
    names: set[str] = set()
    capture = False
    for token, word in zip(value.tokens, value.words()):
        if word in ("IN", "OUT", "FROM", "TO"):
            capture = True
        elif word == "ENFORCED":
            capture = False
        elif capture and token not in ("|", ",") and _PLAIN_IDENT.match(token):
            names.add(token)
    return sorted(names)


def _search_analyzer(value: PropertyValue) -> str | None:
    if not isinstance(value, Expr):
        return None
    words = value.words()
    if "ANALYZER" in words:
        index = words.index("ANALYZER")
        if index + 1 < len(value.tokens):
            return value.tokens[index + 1].strip("`")
    return None


def sort_objects(objects: Iterable[SchemaObject]) -> list[SchemaObject]:
    return sorted(objects, key=lambda obj: obj.key.sort_key)


@dataclass(frozen=True, eq=False)
class SchemaSnapshot:
    """
    Schema state at one point in time.

    ``version`` is the migration unit this snapshot is the baseline of
    (``None`` for the empty baseline). Two snapshots are equal when they
    hold the same objects; the version is bookkeeping, not content.
    """

    objects: Mapping[ObjectKey, SchemaObject] = field(default_factory=dict)
    version: str | None = None

    def __post_init__(self) -> None:
        ordered = {obj.key: obj for obj in sort_objects(self.objects.values())}
        object.__setattr__(self, "objects", MappingProxyType(ordered))

    @classmethod
    def empty(cls) -> SchemaSnapshot:
        return cls()

    @classmethod
    def from_objects(cls, objects: Iterable[SchemaObject], version: str | None = None) -> SchemaSnapshot:
        return cls({obj.key: obj for obj in objects}, version)

    def with_version(self, version: str | None) -> SchemaSnapshot:
        return SchemaSnapshot(dict(self.objects), version)

    def tables(self) -> list[SchemaObject]:
        return [obj for obj in self.objects.values() if obj.kind is ObjectKind.TABLE]

    def children(self, table: str) -> list[SchemaObject]:
        return [obj for obj in self.objects.values() if obj.kind.on_table and obj.table == table]

    def get(self, key: ObjectKey) -> SchemaObject | None:
        return self.objects.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.objects

    def __getitem__(self, key: ObjectKey) -> SchemaObject:
        return self.objects[key]

    def __iter__(self) -> Iterator[ObjectKey]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchemaSnapshot):
            return NotImplemented
        return dict(self.objects) == dict(other.objects)

    def __hash__(self) -> int:
        return hash(tuple(self.objects.values()))
