import pytest

from schema_sync.core.errors import ParseError, TokenizeError
from schema_sync.core.sql_tokenizer import (
    COMMENT, IDENT, NUMBER, PUNCT, QUOTED, STRING,
    TokenStream, split_statements, split_top_level, tokenize,
)


def kinds_and_values(sql, **kwargs):
    return [(t.kind, t.value) for t in tokenize(sql, **kwargs)]


def test_basic_create_table_tokens():
    tokens = kinds_and_values("CREATE TABLE t (id int, price numeric(10,2));")
    assert tokens[:4] == [(IDENT, 'CREATE'), (IDENT, 'TABLE'), (IDENT, 't'), (PUNCT, '(')]
    assert (NUMBER, '10') in tokens
    assert tokens[-1] == (PUNCT, ';')


def test_comments_are_dropped_unless_requested():
    sql = "-- header\nCREATE /* inline */ TABLE t (id int);"
    assert all(kind != COMMENT for kind, _ in kinds_and_values(sql))

    with_comments = kinds_and_values(sql, keep_comments=True)
    assert (COMMENT, 'header') in with_comments
    assert (COMMENT, 'inline') in with_comments


def test_string_escapes():
    tokens = tokenize("'it''s' E'a\\'b'")
    assert [t.kind for t in tokens] == [STRING, STRING]
    assert tokens[0].value == "it's"
    assert tokens[1].value == "a'b"


def test_backslash_is_literal_in_standard_strings():
    tokens = tokenize(r"'C:\data\x' '\' E'a\\b'")
    assert [t.value for t in tokens] == [r'C:\data\x', '\\', r'a\b']


def test_backslash_escapes_flag_for_mysql_strings():
    tokens = tokenize(r"'it\'s' 'a\\b'", backslash_escapes=True)
    assert [t.value for t in tokens] == ["it's", r'a\b']


def test_quoted_identifier_styles():
    tokens = tokenize('"My Table" `x``y` CREATE TABLE [order items]')
    assert (tokens[0].kind, tokens[0].value) == (QUOTED, 'My Table')
    assert (tokens[1].kind, tokens[1].value) == (QUOTED, 'x`y')
    assert (tokens[-1].kind, tokens[-1].value) == (QUOTED, 'order items')


def test_array_suffix_is_punctuation():
    tokens = tokenize("tags text[]")
    assert [t.value for t in tokens] == ['tags', 'text', '[', ']']
    assert tokens[2].kind == PUNCT


def test_line_and_column_positions():
    tokens = tokenize("CREATE TABLE t (\n  id int\n);")
    id_token = next(t for t in tokens if t.value == 'id')
    assert (id_token.line, id_token.col) == (2, 3)


def test_unterminated_string_raises_with_position():
    with pytest.raises(TokenizeError) as excinfo:
        tokenize("SELECT 'abc")
    assert excinfo.value.line == 1
    assert excinfo.value.col == 8


def test_unterminated_string_runs_to_end_when_lenient():
    tokens = tokenize("SELECT 'abc", strict=False)
    assert tokens[-1].kind == STRING
    assert tokens[-1].value == 'abc'


def test_unterminated_block_comment_raises():
    with pytest.raises(TokenizeError):
        tokenize("CREATE TABLE t (id int); /* never closed")


def test_split_statements_ignores_semicolons_in_literals():
    sql = "CREATE TABLE a (x text DEFAULT ';'); -- ; not here\nCREATE TABLE b (y int);"
    statements = split_statements(sql)
    assert len(statements) == 2, "Semicolons in strings and comments must not split"
    assert statements[0].starts_with('CREATE', 'TABLE')
    assert statements[1].text == "CREATE TABLE b (y int)"


def test_split_top_level_respects_parentheses():
    tokens = tokenize("a numeric(10,2), b int")
    parts = split_top_level(tokens)
    assert len(parts) == 2
    assert [t.value for t in parts[0]] == ['a', 'numeric', '(', '10', ',', '2', ')']


def test_token_stream_helpers():
    stream = TokenStream(tokenize("IF NOT EXISTS (a, (b)) tail"))
    assert stream.accept('IF', 'NOT', 'EXISTS')
    inner = stream.skip_balanced()
    assert [t.value for t in inner] == ['a', ',', '(', 'b', ')']
    assert stream.expect_name().value == 'tail'
    assert stream.at_end()


def test_token_stream_error_mentions_location():
    stream = TokenStream(tokenize("CREATE\n  VIEW v"))
    stream.expect('CREATE')
    with pytest.raises(ParseError) as excinfo:
        stream.expect('TABLE')
    assert "line 2" in str(excinfo.value)
