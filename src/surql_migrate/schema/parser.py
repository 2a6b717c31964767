"""
Definition parser: SurrealQL ``DEFINE`` statements → canonical model.

Manifesto:
    Definition files are the source of truth and are re-read on every
    invocation. The parser has to be strict (a typo must fail loudly with a
    file and a line, never produce a silently different schema) and
    order-independent (a field file may be read before its table file).

    - **Grammar-aware:** Clauses are recognised only at bracket depth 0,
      types are parsed into ``TypeExpr`` trees
    - **Two-pass:** Tables (and other database-level objects) are collected
      from every file first, children are attached second
    - **Canonical:** Clause order, ``COLUMNS``/``FIELDS`` and
      ``SCHEMAFUL``/``SCHEMAFULL`` spellings are normalised

Architecture:
    ::

        SourceFile(path, category, text)
            │ tokenize() + split_statements()
            ▼
        parse_statement()  ── one SchemaObject per DEFINE
            │
            ▼
        assemble()  pass 1: tables, analyzers, scopes
                    pass 2: fields, events, indexes (table must exist)
            │
            ▼
        SchemaSnapshot

Examples:
    >>> snapshot = parse_definitions([
    ...     SourceFile("schemas/customer.surql", "schemas",
    ...                "DEFINE TABLE customer SCHEMAFULL;"
    ...                "DEFINE FIELD name ON customer TYPE string;"),
    ... ])
    >>> [str(key) for key in snapshot]
    ['table customer', 'field customer.name']

Tags:
    parser, surrealql, definitions, canonical-model, surql-migrate
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from surql_migrate.core.errors import ParseError, StorageError
from surql_migrate.core.logging import get_logger
from surql_migrate.schema.model import (
    Expr,
    ObjectKey,
    ObjectKind,
    PropertyValue,
    SchemaObject,
    SchemaSnapshot,
    SourceLocation,
    TypeExpr,
)
from surql_migrate.schema.tokens import Token, TokenKind, render, split_statements, tokenize

logger = get_logger(__name__)

SOURCE_SUFFIX = ".surql"


@dataclass(frozen=True)
class SourceFile:
    """One definition file: the parser's unit of input."""

    path: str
    category: str
    text: str


@dataclass(frozen=True)
class _Clause:
    name: str
    flag: bool = False
    # Greedy clauses swallow the rest of the statement unless their value is
    # a single bracketed group.
    greedy: bool = False


def _clauses(*specs: _Clause) -> dict[str, _Clause]:
    return {spec.name: spec for spec in specs}


# Canonical clause order per kind; properties are stored in this order.
_GRAMMAR: dict[ObjectKind, dict[str, _Clause]] = {
    ObjectKind.TABLE: _clauses(
        _Clause("DROP", flag=True),
        _Clause("SCHEMAFULL", flag=True),
        _Clause("SCHEMALESS", flag=True),
        _Clause("TYPE"),
        _Clause("AS", greedy=True),
        _Clause("CHANGEFEED"),
        _Clause("PERMISSIONS", greedy=True),
        _Clause("COMMENT"),
    ),
    ObjectKind.FIELD: _clauses(
        _Clause("FLEXIBLE", flag=True),
        _Clause("TYPE"),
        _Clause("DEFAULT"),
        _Clause("READONLY", flag=True),
        _Clause("VALUE"),
        _Clause("ASSERT"),
        _Clause("PERMISSIONS", greedy=True),
        _Clause("COMMENT"),
    ),
    ObjectKind.EVENT: _clauses(
        _Clause("WHEN"),
        _Clause("THEN", greedy=True),
        _Clause("COMMENT"),
    ),
    ObjectKind.INDEX: _clauses(
        _Clause("FIELDS"),
        _Clause("UNIQUE", flag=True),
        _Clause("SEARCH"),
        _Clause("MTREE"),
        _Clause("HNSW"),
        _Clause("COMMENT"),
    ),
    ObjectKind.ANALYZER: _clauses(
        _Clause("FUNCTION"),
        _Clause("TOKENIZERS"),
        _Clause("FILTERS"),
        _Clause("COMMENT"),
    ),
    ObjectKind.SCOPE: _clauses(
        _Clause("SESSION"),
        _Clause("SIGNUP"),
        _Clause("SIGNIN"),
        _Clause("COMMENT"),
    ),
}

_TYPE_KEYWORDS = frozenset(
    {
        "any", "array", "bool", "bytes", "datetime", "decimal", "duration", "float",
        "geometry", "int", "number", "object", "option", "record", "set", "string",
        "uuid", "literal", "null", "none", "regex", "range", "function", "point",
        "line", "polygon", "multipoint", "multiline", "multipolygon", "collection",
        "feature",
    }
)

_ALIASES = {"COLUMNS": "FIELDS", "SCHEMAFUL": "SCHEMAFULL"}
_EXCLUSIVE = [("SCHEMAFULL", "SCHEMALESS")]

# Keywords inside clause values compare upper-cased; identifiers keep their case.
_VALUE_KEYWORDS = frozenset(
    {
        "FOR", "SELECT", "CREATE", "UPDATE", "DELETE", "FULL", "NONE", "NULL", "TRUE",
        "FALSE", "WHERE", "AND", "OR", "NOT", "IS", "IN", "OUT", "CONTAINS", "INSIDE",
        "IF", "ELSE", "THEN", "END", "LET", "RETURN", "SET", "CONTENT", "MERGE", "FROM",
        "TO", "ONLY", "RELATION", "NORMAL", "ANY", "ENFORCED", "ANALYZER", "BM25",
        "HIGHLIGHTS", "DIMENSION", "DIST", "TYPE", "INCLUDE", "ORIGINAL", "EUCLIDEAN",
        "COSINE", "MANHATTAN",
    }
)


def _value_tokens(tokens: Sequence[Token]) -> tuple[str, ...]:
    """Comparable token texts of a clause value."""
    texts = []
    for index, token in enumerate(tokens):
        text = token.text
        if token.kind is TokenKind.WORD and token.upper in _VALUE_KEYWORDS:
            previous = tokens[index - 1].text if index else None
            following = tokens[index + 1].text if index + 1 < len(tokens) else None
            # ``$after.in`` and ``string::is::email`` are paths, not keywords.
            if previous not in (".", "::") and following not in (".", "::"):
                text = token.upper
        texts.append(text)
    return tuple(texts)


class _StatementParser:
    """Parses the token run of a single DEFINE statement."""

    def __init__(self, tokens: Sequence[Token], file: str | None) -> None:
        self.tokens = tokens
        self.file = file
        self.pos = 0

    # -- token helpers -----------------------------------------------------

    def error(self, detail: str, token: Token | None = None) -> ParseError:
        token = token or (self.tokens[self.pos] if self.pos < len(self.tokens) else self.tokens[-1])
        return ParseError(detail, file=self.file, line=token.line, column=token.column)

    def peek(self, offset: int = 0) -> Token | None:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else None

    def next(self, expected: str) -> Token:
        token = self.peek()
        if token is None:
            raise self.error(f"unexpected end of statement, expected {expected}")
        self.pos += 1
        return token

    def accept(self, *words: str) -> bool:
        token = self.peek()
        if token is not None and token.is_word(*words):
            self.pos += 1
            return True
        return False

    # -- statement ---------------------------------------------------------

    def parse(self) -> SchemaObject:
        first = self.next("DEFINE")
        if not first.is_word("DEFINE"):
            raise self.error(
                f"only DEFINE statements are allowed in definition files, found {first.text!r}",
                first,
            )
        kind_token = self.next("a definition kind")
        try:
            kind = ObjectKind(kind_token.text.lower())
        except ValueError:
            raise self.error(f"unsupported definition kind {kind_token.text!r}", kind_token) from None

        self._skip_modifiers()
        name = self._parse_name(kind)
        table = ""
        if kind.on_table:
            if not self.accept("ON"):
                raise self.error(f"expected ON TABLE <table> after {kind.keyword} {name}")
            self.accept("TABLE")
            table = self._ident(self.next("a table name"))

        properties = self._parse_clauses(kind)
        return SchemaObject(
            kind=kind,
            name=name,
            table=table,
            properties=properties,
            source=render(self.tokens),
            location=SourceLocation(self.file, first.line, first.column),
        )

    def _skip_modifiers(self) -> None:
        if self.accept("OVERWRITE"):
            return
        if self.accept("IF"):
            if not (self.accept("NOT") and self.accept("EXISTS")):
                raise self.error("expected IF NOT EXISTS")

    def _ident(self, token: Token) -> str:
        if token.kind is not TokenKind.WORD:
            raise self.error(f"expected an identifier, found {token.text!r}", token)
        text = token.text
        if text[0] in "`⟨":
            return text[1:-1]
        return text

    def _parse_name(self, kind: ObjectKind) -> str:
        if kind is not ObjectKind.FIELD:
            return self._ident(self.next("a name"))
        # Field names may be paths: ``address.city``, ``tags[*]``, ``tags.*``.
        start = self.pos
        while (token := self.peek()) is not None and not (token.depth == 0 and token.is_word("ON")):
            self.pos += 1
        if self.pos == start:
            raise self.error("expected a field name")
        parts = self.tokens[start : self.pos]
        if parts[0].kind is not TokenKind.WORD:
            raise self.error(f"expected a field name, found {parts[0].text!r}", parts[0])
        return "".join(token.text for token in parts)

    # -- clauses -----------------------------------------------------------

    def _clause_at(self, index: int, grammar: Mapping[str, _Clause]) -> _Clause | None:
        token = self.tokens[index] if index < len(self.tokens) else None
        if token is None or token.kind is not TokenKind.WORD or token.depth != 0:
            return None
        name = _ALIASES.get(token.upper, token.upper)
        clause = grammar.get(name)
        if clause is None:
            return None
        following = self.tokens[index + 1] if index + 1 < len(self.tokens) else None
        previous = self.tokens[index - 1] if index else None
        # ``type::thing(...)``, ``$value.type`` and ``comment = 1`` are expressions.
        if following is not None and following.text in ("::", "."):
            return None
        if previous is not None and previous.text in (".", "::"):
            return None
        if name == "COMMENT" and (following is None or following.kind is not TokenKind.STRING):
            return None
        return clause

    def _parse_clauses(self, kind: ObjectKind) -> tuple[tuple[str, PropertyValue], ...]:
        grammar = _GRAMMAR[kind]
        found: dict[str, PropertyValue] = {}
        while self.pos < len(self.tokens):
            keyword = self.tokens[self.pos]
            clause = self._clause_at(self.pos, grammar)
            if clause is None:
                raise self.error(f"unexpected {keyword.text!r} in DEFINE {kind.keyword}", keyword)
            if clause.name in found:
                raise self.error(f"duplicate {clause.name} clause", keyword)
            self.pos += 1
            value_tokens = self._clause_value(clause, grammar)
            if clause.flag:
                found[clause.name] = None
                continue
            if not value_tokens:
                raise self.error(f"missing value for {clause.name}", keyword)
            if kind is ObjectKind.FIELD and clause.name == "TYPE":
                found[clause.name] = _TypeParser(value_tokens, self).parse()
            else:
                found[clause.name] = Expr(_value_tokens(value_tokens), render(value_tokens))

        for left, right in _EXCLUSIVE:
            if left in found and right in found:
                raise self.error(f"{left} and {right} are mutually exclusive", self.tokens[0])
        return tuple((name, found[name]) for name in grammar if name in found)

    def _clause_value(self, clause: _Clause, grammar: Mapping[str, _Clause]) -> list[Token]:
        start = self.pos
        if clause.flag:
            return []
        first = self.peek()
        if clause.greedy and first is not None and first.kind is not TokenKind.OPEN:
            stop_at = {"COMMENT": grammar["COMMENT"]}
        else:
            stop_at = dict(grammar)
        # Inside ``record<value>`` a clause keyword is a table name.
        angles = 0
        while self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            if angles == 0 and self.pos > start and self._clause_at(self.pos, stop_at) is not None:
                break
            if clause.name == "TYPE" and token.depth == 0 and token.kind is TokenKind.OPERATOR:
                if token.text == "<":
                    angles += 1
                elif token.text == ">" and angles:
                    angles -= 1
            self.pos += 1
        return list(self.tokens[start : self.pos])


class _TypeParser:
    """Recursive-descent parser for field types.

    type   := single ('|' single)*
    single := name [('<' | '(') type (',' type)* ('>' | ')')]
            | literal
    """

    def __init__(self, tokens: Sequence[Token], owner: _StatementParser) -> None:
        self.tokens = tokens
        self.owner = owner
        self.pos = 0

    def error(self, detail: str) -> ParseError:
        token = self.tokens[min(self.pos, len(self.tokens) - 1)]
        return self.owner.error(f"invalid type: {detail}", token)

    def peek_text(self) -> str | None:
        return self.tokens[self.pos].text if self.pos < len(self.tokens) else None

    def parse(self) -> TypeExpr:
        result = self.parse_union()
        if self.pos != len(self.tokens):
            raise self.error(f"unexpected {self.peek_text()!r}")
        return result

    def parse_union(self) -> TypeExpr:
        members = [self.parse_single()]
        while self.peek_text() == "|":
            self.pos += 1
            members.append(self.parse_single())
        return TypeExpr.union(members) if len(members) > 1 else members[0]

    def parse_single(self) -> TypeExpr:
        if self.pos >= len(self.tokens):
            raise self.error("unexpected end of type")
        token = self.tokens[self.pos]
        self.pos += 1
        if token.kind in (TokenKind.STRING, TokenKind.NUMBER):
            return TypeExpr(token.text)
        if token.kind is not TokenKind.WORD:
            raise self.error(f"unexpected {token.text!r}")
        name = token.text.lower() if token.text.lower() in _TYPE_KEYWORDS else token.text
        opener = self.peek_text()
        if opener not in ("<", "("):
            return TypeExpr(name)
        closer = ">" if opener == "<" else ")"
        self.pos += 1
        args = [self.parse_union()]
        while self.peek_text() == ",":
            self.pos += 1
            args.append(self.parse_union())
        if self.peek_text() != closer:
            raise self.error(f"expected {closer!r}")
        self.pos += 1
        if name == "record":
            # record<a | b> and record(a, b) both name a set of tables.
            tables = TypeExpr.union(args)
            members = tables.args if tables.name == TypeExpr.UNION else (tables,)
            if any(m.args for m in members):
                raise self.error("record<> takes table names only")
            return TypeExpr("record", tuple(TypeExpr(m.name.strip("`")) for m in members))
        return TypeExpr(name, tuple(args))


def parse_source(source: SourceFile) -> list[SchemaObject]:
    """Parse every statement of one file (children are not yet attached)."""
    tokens = tokenize(source.text, source.path)
    return [_StatementParser(run, source.path).parse() for run in split_statements(tokens)]


def parse_statement(text: str, file: str | None = None) -> SchemaObject:
    """Parse exactly one DEFINE statement."""
    objects = parse_source(SourceFile(file or "<statement>", "", text))
    if len(objects) != 1:
        raise ParseError(f"expected exactly one statement, found {len(objects)}", file=file)
    return objects[0]


def assemble(objects: Iterable[SchemaObject], version: str | None = None) -> SchemaSnapshot:
    """
    Build a snapshot from parsed objects in two passes.

    Pass 1 registers every database-level object (tables, analyzers,
    scopes); pass 2 attaches fields, events and indexes, failing when the
    owning table is declared nowhere. Duplicate identities fail in either
    pass with the locations of both declarations.
    """
    objects = list(objects)
    registered: dict[ObjectKey, SchemaObject] = {}

    def register(obj: SchemaObject) -> None:
        existing = registered.get(obj.key)
        if existing is not None:
            loc = obj.location
            raise ParseError(
                f"duplicate definition of {obj.key} (first defined at {existing.location})",
                file=loc.file if loc else None,
                line=loc.line if loc else None,
                column=loc.column if loc else None,
            )
        registered[obj.key] = obj

    for obj in objects:
        if not obj.kind.on_table:
            register(obj)

    for obj in objects:
        if not obj.kind.on_table:
            continue
        if obj.parent not in registered:
            loc = obj.location
            raise ParseError(
                f"{obj.key} is defined on table {obj.table!r}, which is not defined",
                file=loc.file if loc else None,
                line=loc.line if loc else None,
                column=loc.column if loc else None,
            )
        register(obj)

    return SchemaSnapshot.from_objects(registered.values(), version)


def parse_definitions(sources: Iterable[SourceFile]) -> SchemaSnapshot:
    """Parse category-grouped sources into a snapshot (any file order)."""
    objects: list[SchemaObject] = []
    count = 0
    for source in sources:
        objects.extend(parse_source(source))
        count += 1
    snapshot = assemble(objects)
    logger.debug("definitions.parsed", files=count, objects=len(snapshot))
    return snapshot


def discover_sources(category_dirs: Mapping[str, Path]) -> list[SourceFile]:
    """Read every ``*.surql`` file from the category folders, sorted by path."""
    sources: list[SourceFile] = []
    for category, directory in category_dirs.items():
        if not directory.is_dir():
            continue
        for path in sorted(directory.rglob(f"*{SOURCE_SUFFIX}")):
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise StorageError(f"Cannot read {path}: {exc}", cause=exc).with_context(
                    file=str(path)
                ) from exc
            sources.append(SourceFile(str(path), category, text))
    return sources
