"""Tests for the SurrealQL tokenizer and statement splitter."""

from __future__ import annotations

import pytest

from surql_migrate.core.errors import ParseError
from surql_migrate.schema.tokens import TokenKind, render, split_script, split_statements, tokenize


def texts(source: str) -> list[str]:
    return [t.text for t in tokenize(source)]


class TestTokenize:
    def test_words_operators_and_params(self):
        assert texts("ASSERT $value != NONE") == ["ASSERT", "$value", "!=", "NONE"]

    def test_longest_operator_wins(self):
        assert texts("a<->b") == ["a", "<->", "b"]
        assert texts("time::now()") == ["time", "::", "now", "(", ")"]

    def test_strings_keep_quotes(self):
        tokens = tokenize("COMMENT 'it''s'")
        assert tokens[1].kind is TokenKind.STRING

    def test_prefixed_strings(self):
        tokens = tokenize('DEFAULT d"2024-01-01T00:00:00Z"')
        assert tokens[1].kind is TokenKind.STRING
        assert tokens[1].text.startswith('d"')

    def test_backtick_identifier_is_a_word(self):
        tokens = tokenize("`my table`")
        assert tokens[0].kind is TokenKind.WORD
        assert tokens[0].text == "`my table`"

    def test_numbers_with_duration_suffix(self):
        assert texts("CHANGEFEED 3d") == ["CHANGEFEED", "3d"]
        assert tokenize("1h30m")[0].kind is TokenKind.NUMBER

    def test_comments_are_skipped(self):
        source = "-- header\nDEFINE TABLE a; # trailing\n// more\n/* block\n */ DEFINE TABLE b;"
        assert texts(source) == ["DEFINE", "TABLE", "a", ";", "DEFINE", "TABLE", "b", ";"]

    def test_line_and_column(self):
        tokens = tokenize("DEFINE TABLE a;\n  DEFINE TABLE b;")
        second = tokens[4]
        assert (second.text, second.line, second.column) == ("DEFINE", 2, 3)

    def test_depth_tracks_brackets(self):
        tokens = tokenize("THEN { a; b }")
        depths = {t.text: t.depth for t in tokens}
        assert depths["THEN"] == 0
        assert depths["a"] == 1
        assert depths["{"] == 0
        assert depths["}"] == 0

    def test_regex_literal_after_operator(self):
        tokens = tokenize("ASSERT $value = /^[A-Z]{2}$/")
        assert tokens[-1].kind is TokenKind.REGEX
        assert tokens[-1].text == "/^[A-Z]{2}$/"

    def test_regex_escapes(self):
        tokens = tokenize(r"ASSERT $value = /\d+\/\d+/ AND $value != NONE")
        assert tokens[3].text == r"/\d+\/\d+/"
        assert [t.text for t in tokens[4:]] == ["AND", "$value", "!=", "NONE"]

    def test_slash_after_operand_divides(self):
        tokens = tokenize("VALUE $a / 2")
        assert tokens[2].kind is TokenKind.OPERATOR
        assert texts("VALUE count() / 2") == ["VALUE", "count", "(", ")", "/", "2"]


class TestTokenizeErrors:
    def test_unbalanced_closer(self):
        with pytest.raises(ParseError, match="unbalanced"):
            tokenize("DEFINE TABLE a )", "schemas/a.surql")

    def test_unclosed_bracket_reports_opener(self):
        with pytest.raises(ParseError) as info:
            tokenize("DEFINE EVENT e ON t THEN {\n  UPDATE x", "events/e.surql")
        assert info.value.line == 1
        assert info.value.file == "events/e.surql"

    def test_unterminated_string(self):
        with pytest.raises(ParseError, match="unterminated string"):
            tokenize("COMMENT 'oops")

    def test_unterminated_regex(self):
        with pytest.raises(ParseError, match="unterminated regex"):
            tokenize("ASSERT $value = /^[a-z]+\nDEFINE TABLE a;")

    def test_unexpected_character(self):
        with pytest.raises(ParseError, match="unexpected character"):
            tokenize("DEFINE TABLE a \\")


class TestSplitting:
    def test_semicolons_inside_blocks_do_not_split(self):
        source = "DEFINE EVENT e ON t THEN { CREATE log; UPDATE x; };DEFINE TABLE t;"
        runs = list(split_statements(tokenize(source)))
        assert len(runs) == 2
        assert runs[1][0].text == "DEFINE"

    def test_empty_statements_skipped(self):
        assert split_script(";;DEFINE TABLE a;;") == ("DEFINE TABLE a",)

    def test_render_normalises_whitespace(self):
        tokens = tokenize("DEFINE   FIELD  name\n ON customer TYPE   option<string>")
        assert render(tokens) == "DEFINE FIELD name ON customer TYPE option<string>"

    def test_render_round_trips(self):
        source = "DEFINE FIELD created ON post VALUE time::now() ASSERT $value != NONE"
        rendered = render(tokenize(source))
        assert [t.text for t in tokenize(rendered)] == texts(source)
        assert render(tokenize(rendered)) == rendered

    def test_regex_survives_render(self):
        source = r"DEFINE FIELD code ON country ASSERT $value = /^[A-Z]{2}\d?$/;DEFINE TABLE b;"
        assert split_script(source) == (
            r"DEFINE FIELD code ON country ASSERT $value = /^[A-Z]{2}\d?$/",
            "DEFINE TABLE b",
        )
