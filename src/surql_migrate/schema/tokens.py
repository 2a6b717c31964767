"""SurrealQL tokenizer.

Splits definition-language source into tokens that remember their line,
column and whether whitespace (or a comment) preceded them. Statements are
split on ``;`` at bracket depth 0 only, so semicolons inside event bodies
(``THEN { ...; ... }``) never end a statement.

Rendering a token run with :func:`render` reproduces the source with
comments removed and whitespace collapsed; re-tokenizing that text yields
the same tokens, which is what makes snapshot round-trips exact.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum

from surql_migrate.core.errors import ParseError


class TokenKind(str, Enum):
    WORD = "word"
    STRING = "string"
    NUMBER = "number"
    PARAM = "param"
    REGEX = "regex"
    OPERATOR = "operator"
    OPEN = "open"
    CLOSE = "close"
    COMMA = "comma"
    SEMICOLON = "semicolon"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    line: int
    column: int
    spaced: bool = False
    depth: int = 0

    @property
    def upper(self) -> str:
        return self.text.upper()

    def is_word(self, *words: str) -> bool:
        return self.kind is TokenKind.WORD and self.upper in words


_PAIRS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {v: k for k, v in _PAIRS.items()}

# Longest first so that ``<->`` wins over ``<-`` and ``<``.
_OPERATORS = sorted(
    [
        "<->", "::", "..", "->", "<-", "==", "!=", "*=", "?=", "<=", ">=",
        "&&", "||", "??", "?:", "+=", "-=", "**", "!~", "*~", "?~", "@@",
        "=", "<", ">", "+", "-", "*", "/", "!", "?", ":", ".", "|", "&",
        "@", "~", "%", "^", "×", "÷", "∋", "∌", "∈", "∉", "⊇", "⊃", "⊅",
        "⊆", "⊂", "⊄",
    ],
    key=len,
    reverse=True,
)

_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_NUMBER = re.compile(r"\d+(?:\.\d+)?(?:[eE][+-]?\d+)?(?:[A-Za-zµ]+(?:\d+[A-Za-zµ]+)*)?")
_PARAM = re.compile(r"\$[A-Za-z0-9_]+")
_STRING_PREFIXES = {"r", "d", "s", "u", "b"}

# After these words a ``/`` opens a regex literal rather than dividing.
_REGEX_AFTER_WORDS = {
    "ASSERT", "VALUE", "DEFAULT", "WHEN", "THEN", "WHERE", "RETURN", "IF", "ELSE",
    "AND", "OR", "NOT", "IS", "IN", "CONTAINS", "INSIDE", "SET",
}


def _starts_regex(previous: Token | None) -> bool:
    if previous is None:
        return True
    if previous.kind in (TokenKind.OPERATOR, TokenKind.OPEN, TokenKind.COMMA, TokenKind.SEMICOLON):
        return True
    return previous.kind is TokenKind.WORD and previous.upper in _REGEX_AFTER_WORDS


class _Scanner:
    def __init__(self, text: str, file: str | None) -> None:
        self.text = text
        self.file = file
        self.pos = 0
        self.line = 1
        self.column = 1

    def error(self, detail: str, line: int | None = None, column: int | None = None) -> ParseError:
        return ParseError(
            detail,
            file=self.file,
            line=line if line is not None else self.line,
            column=column if column is not None else self.column,
        )

    def advance(self, count: int) -> str:
        chunk = self.text[self.pos : self.pos + count]
        for char in chunk:
            if char == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        self.pos += count
        return chunk

    def peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def skip_trivia(self) -> bool:
        """Skip whitespace and comments; return True if anything was skipped."""
        skipped = False
        while self.pos < len(self.text):
            char = self.peek()
            if char.isspace():
                self.advance(1)
            elif char == "#" or self.text.startswith(("--", "//"), self.pos):
                end = self.text.find("\n", self.pos)
                self.advance((end if end != -1 else len(self.text)) - self.pos)
            elif self.text.startswith("/*", self.pos):
                line, column = self.line, self.column
                end = self.text.find("*/", self.pos + 2)
                if end == -1:
                    raise self.error("unterminated block comment", line, column)
                self.advance(end + 2 - self.pos)
            else:
                break
            skipped = True
        return skipped

    def read_quoted(self, closer: str) -> str:
        line, column = self.line, self.column
        start = self.pos
        self.advance(1)
        while self.pos < len(self.text):
            char = self.peek()
            if char == "\\":
                self.advance(2)
                continue
            self.advance(1)
            if char == closer:
                return self.text[start : self.pos]
        raise self.error("unterminated string", line, column)

    def read_regex(self) -> str:
        line, column = self.line, self.column
        start = self.pos
        self.advance(1)
        while self.pos < len(self.text) and self.peek() != "\n":
            char = self.peek()
            if char == "\\":
                self.advance(2)
                continue
            self.advance(1)
            if char == "/":
                return self.text[start : self.pos]
        raise self.error("unterminated regex", line, column)


def tokenize(text: str, file: str | None = None) -> list[Token]:
    """Tokenize SurrealQL ``text``; raises ParseError with a location."""
    scanner = _Scanner(text, file)
    tokens: list[Token] = []
    stack: list[Token] = []

    while True:
        spaced = scanner.skip_trivia()
        if scanner.pos >= len(text):
            break
        line, column = scanner.line, scanner.column
        char = scanner.peek()
        depth = len(stack)

        if char in "'\"`":
            kind = TokenKind.STRING if char != "`" else TokenKind.WORD
            value = scanner.read_quoted(char)
        elif char == "⟨":
            kind = TokenKind.WORD
            value = scanner.read_quoted("⟩")
        elif char in _STRING_PREFIXES and scanner.peek(1) in ("'", "\""):
            scanner.advance(1)
            kind = TokenKind.STRING
            value = char + scanner.read_quoted(scanner.peek())
        elif match := _WORD.match(text, scanner.pos):
            kind = TokenKind.WORD
            value = scanner.advance(match.end() - match.start())
        elif match := _NUMBER.match(text, scanner.pos):
            kind = TokenKind.NUMBER
            value = scanner.advance(match.end() - match.start())
        elif char == "$":
            match = _PARAM.match(text, scanner.pos)
            if not match:
                raise scanner.error("expected a parameter name after '$'")
            kind = TokenKind.PARAM
            value = scanner.advance(match.end() - match.start())
        elif char in _PAIRS:
            kind = TokenKind.OPEN
            value = scanner.advance(1)
        elif char in _CLOSERS:
            if not stack or stack[-1].text != _CLOSERS[char]:
                raise scanner.error(f"unbalanced {char!r}")
            stack.pop()
            depth = len(stack)
            kind = TokenKind.CLOSE
            value = scanner.advance(1)
        elif char == "/" and _starts_regex(tokens[-1] if tokens else None):
            kind = TokenKind.REGEX
            value = scanner.read_regex()
        elif char == ",":
            kind = TokenKind.COMMA
            value = scanner.advance(1)
        elif char == ";":
            kind = TokenKind.SEMICOLON
            value = scanner.advance(1)
        else:
            operator = next((op for op in _OPERATORS if text.startswith(op, scanner.pos)), None)
            if operator is None:
                raise scanner.error(f"unexpected character {char!r}")
            kind = TokenKind.OPERATOR
            value = scanner.advance(len(operator))

        token = Token(kind, value, line, column, spaced and bool(tokens), depth)
        tokens.append(token)
        if kind is TokenKind.OPEN:
            stack.append(token)

    if stack:
        opener = stack[-1]
        raise scanner.error(f"unclosed {opener.text!r}", opener.line, opener.column)
    return tokens


def split_statements(tokens: Sequence[Token]) -> Iterator[list[Token]]:
    """Yield the token runs of each top-level statement (empty ones skipped)."""
    current: list[Token] = []
    for token in tokens:
        if token.kind is TokenKind.SEMICOLON and token.depth == 0:
            if current:
                yield current
            current = []
        else:
            current.append(token)
    if current:
        yield current


def render(tokens: Sequence[Token]) -> str:
    """Render tokens back to text with normalised whitespace."""
    parts: list[str] = []
    for index, token in enumerate(tokens):
        if index and token.spaced:
            parts.append(" ")
        parts.append(token.text)
    return "".join(parts)


def split_script(text: str, file: str | None = None) -> tuple[str, ...]:
    """Split a migration script into executable statement texts."""
    return tuple(render(statement) for statement in split_statements(tokenize(text, file)))
