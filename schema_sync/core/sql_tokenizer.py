"""
SQL tokenizer - splits DDL text into identifiers, literals and punctuation
"""
import re
from typing import List, Optional, Iterable

from .errors import TokenizeError, ParseError

IDENT = 'IDENT'
QUOTED = 'QUOTED'
STRING = 'STRING'
NUMBER = 'NUMBER'
PUNCT = 'PUNCT'
OP = 'OP'
COMMENT = 'COMMENT'

_IDENT_RE = re.compile(r'[A-Za-z_\u0080-\uffff][A-Za-z0-9_$\u0080-\uffff]*')
_NUMBER_RE = re.compile(r'(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_QUOTE_CLOSERS = {'"': '"', '`': '`', '[': ']'}
_PUNCTUATION = '(),;.[]'
_NAME_INTRODUCERS = {'TABLE', 'EXISTS', 'REFERENCES', 'ON', 'KEY', 'INDEX', 'CONSTRAINT', 'TYPE', 'ONLY'}


class Token:
    """A single lexical token with its source span"""

    __slots__ = ('kind', 'value', 'text', 'start', 'end', 'line', 'col')

    def __init__(self, kind: str, value: str, text: str, start: int, end: int, line: int, col: int):
        self.kind = kind
        self.value = value
        self.text = text
        self.start = start
        self.end = end
        self.line = line
        self.col = col

    @property
    def upper(self) -> str:
        return self.value.upper()

    def is_keyword(self, *words: str) -> bool:
        """True for a bare identifier equal to one of words (case-insensitive)"""
        return self.kind == IDENT and self.value.upper() in words

    def is_punct(self, char: str) -> bool:
        return self.kind == PUNCT and self.value == char

    @property
    def is_name(self) -> bool:
        return self.kind in (IDENT, QUOTED)

    def __repr__(self):
        return f"Token({self.kind}, {self.text!r}, line={self.line})"


def tokenize(sql: str, keep_comments: bool = False, strict: bool = True,
             backslash_escapes: bool = False) -> List[Token]:
    """
    Tokenize SQL text

    Args:
        sql: SQL source
        keep_comments: emit COMMENT tokens instead of dropping them
        strict: raise TokenizeError on unterminated literals, otherwise let
            them run to the end of the text
        backslash_escapes: treat backslash as an escape in every plain string
            (MySQL style); E'...' strings always honour backslash escapes

    Returns:
        List of tokens in source order
    """
    tokens: List[Token] = []
    pos = 0
    line = 1
    line_start = 0
    length = len(sql)

    def emit(kind, value, start, end):
        tokens.append(Token(kind, value, sql[start:end], start, end, line, start - line_start + 1))

    while pos < length:
        char = sql[pos]

        if char == '\n':
            pos += 1
            line += 1
            line_start = pos
            continue
        if char.isspace():
            pos += 1
            continue

        start = pos
        start_line, start_col = line, pos - line_start + 1

        if sql.startswith('--', pos):
            end = sql.find('\n', pos)
            end = length if end == -1 else end
            if keep_comments:
                emit(COMMENT, sql[pos + 2:end].strip(), pos, end)
            pos = end
            continue

        if sql.startswith('/*', pos):
            end = sql.find('*/', pos + 2)
            if end == -1:
                if strict:
                    raise TokenizeError("Unterminated block comment", start_line, start_col)
                end = length
            else:
                end += 2
            if keep_comments:
                emit(COMMENT, sql[pos + 2:end - 2].strip(), pos, end)
            line += sql.count('\n', pos, end)
            if '\n' in sql[pos:end]:
                line_start = sql.rfind('\n', pos, end) + 1
            pos = end
            continue

        prefixed_string = char in 'eEnN' and pos + 1 < length and sql[pos + 1] == "'"
        if char == "'" or prefixed_string:
            quote_pos = pos + 1 if prefixed_string else pos
            escaped = backslash_escapes or (prefixed_string and char in 'eE')
            value, end = _read_quoted(sql, quote_pos, "'", "'", backslash=escaped)
            if end is None:
                if strict:
                    raise TokenizeError("Unterminated string literal", start_line, start_col)
                end = length
            tokens.append(Token(STRING, value, sql[start:end], start, end, start_line, start_col))
            line += sql.count('\n', start, end)
            if '\n' in sql[start:end]:
                line_start = sql.rfind('\n', start, end) + 1
            pos = end
            continue

        if char in _QUOTE_CLOSERS and not (char == '[' and _is_array_suffix(tokens)):
            closer = _QUOTE_CLOSERS[char]
            value, end = _read_quoted(sql, pos, char, closer, backslash=False)
            if end is None:
                if strict:
                    raise TokenizeError("Unterminated quoted identifier", start_line, start_col)
                end = length
            tokens.append(Token(QUOTED, value, sql[start:end], start, end, start_line, start_col))
            line += sql.count('\n', start, end)
            if '\n' in sql[start:end]:
                line_start = sql.rfind('\n', start, end) + 1
            pos = end
            continue

        match = _NUMBER_RE.match(sql, pos)
        if match and (char.isdigit() or (char == '.' and match.end() > pos + 1)):
            emit(NUMBER, match.group(), pos, match.end())
            pos = match.end()
            continue

        match = _IDENT_RE.match(sql, pos)
        if match:
            emit(IDENT, match.group(), pos, match.end())
            pos = match.end()
            continue

        if sql.startswith('::', pos):
            emit(PUNCT, '::', pos, pos + 2)
            pos += 2
            continue

        if char in _PUNCTUATION:
            emit(PUNCT, char, pos, pos + 1)
        else:
            emit(OP, char, pos, pos + 1)
        pos += 1

    return tokens


def _read_quoted(sql: str, pos: int, opener: str, closer: str, backslash: bool):
    """Read a quoted run starting at pos; returns (value, end) or (partial, None)"""
    chars = []
    i = pos + 1
    length = len(sql)
    while i < length:
        char = sql[i]
        if backslash and char == '\\' and i + 1 < length:
            chars.append(sql[i + 1])
            i += 2
            continue
        if char == closer:
            # doubled closer is an escaped quote
            if i + 1 < length and sql[i + 1] == closer and closer == opener:
                chars.append(closer)
                i += 2
                continue
            return ''.join(chars), i + 1
        chars.append(char)
        i += 1
    return ''.join(chars), None


def _is_array_suffix(tokens: List[Token]) -> bool:
    """A '[' right after a type name or ')' is an array suffix, not a quoted identifier"""
    if not tokens:
        return False
    last = tokens[-1]
    if last.is_punct(')'):
        return True
    return last.kind == IDENT and last.upper not in _NAME_INTRODUCERS


class Statement:
    """A top-level statement: its text, tokens and offset in the script"""

    def __init__(self, text: str, tokens: List[Token], start: int):
        self.text = text
        self.tokens = tokens
        self.start = start

    def starts_with(self, *words: str) -> bool:
        """True when the leading identifiers equal words (case-insensitive)"""
        if len(self.tokens) < len(words):
            return False
        return all(tok.is_keyword(word) for tok, word in zip(self.tokens, words))

    def __repr__(self):
        return f"Statement({self.text[:40]!r})"


def split_statements(sql: str, strict: bool = False) -> List[Statement]:
    """Split SQL into statements on top-level semicolons, respecting quotes and comments"""
    return group_statements(sql, tokenize(sql, strict=strict))


def group_statements(sql: str, tokens: List[Token]) -> List[Statement]:
    """Group an already tokenized script into statements"""
    statements = []
    current: List[Token] = []
    for token in tokens:
        if token.is_punct(';'):
            if current:
                statements.append(_make_statement(sql, current))
            current = []
            continue
        current.append(token)
    if current:
        statements.append(_make_statement(sql, current))
    return statements


def split_top_level(tokens: List[Token], separator: str = ',') -> List[List[Token]]:
    """Split tokens on separator punctuation outside any parentheses"""
    parts: List[List[Token]] = []
    current: List[Token] = []
    depth = 0
    for token in tokens:
        if token.is_punct('('):
            depth += 1
        elif token.is_punct(')'):
            depth -= 1
        elif depth == 0 and token.is_punct(separator):
            parts.append(current)
            current = []
            continue
        current.append(token)
    if current:
        parts.append(current)
    return parts


def _make_statement(sql: str, tokens: List[Token]) -> Statement:
    start = tokens[0].start
    return Statement(sql[start:tokens[-1].end], tokens, start)


class TokenStream:
    """Cursor over a token list used by the recursive-descent parser"""

    def __init__(self, tokens: List[Token], source: str = ''):
        self.tokens = tokens
        self.source = source
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def peek(self, offset: int = 0) -> Optional[Token]:
        index = self.pos + offset
        if 0 <= index < len(self.tokens):
            return self.tokens[index]
        return None

    def next(self) -> Token:
        token = self.peek()
        if token is None:
            raise ParseError("Unexpected end of statement")
        self.pos += 1
        return token

    def at_keyword(self, *words: str) -> bool:
        token = self.peek()
        return token is not None and token.is_keyword(*words)

    def at_sequence(self, *words: str) -> bool:
        """True when the next tokens are exactly the given keywords"""
        for offset, word in enumerate(words):
            token = self.peek(offset)
            if token is None or not token.is_keyword(word):
                return False
        return True

    def at_punct(self, char: str) -> bool:
        token = self.peek()
        return token is not None and token.is_punct(char)

    def accept(self, *words: str) -> bool:
        """Consume the keyword sequence if present"""
        if self.at_sequence(*words):
            self.pos += len(words)
            return True
        return False

    def accept_punct(self, char: str) -> bool:
        if self.at_punct(char):
            self.pos += 1
            return True
        return False

    def expect(self, *words: str):
        if not self.accept(*words):
            raise self.error(f"Expected {' '.join(words)}")

    def expect_punct(self, char: str):
        if not self.accept_punct(char):
            raise self.error(f"Expected '{char}'")

    def expect_name(self) -> Token:
        token = self.peek()
        if token is None or not token.is_name:
            raise self.error("Expected an identifier")
        self.pos += 1
        return token

    def skip_balanced(self) -> List[Token]:
        """Consume a parenthesised group starting at '(' and return its inner tokens"""
        self.expect_punct('(')
        depth = 1
        inner = []
        while not self.at_end():
            token = self.next()
            if token.is_punct('('):
                depth += 1
            elif token.is_punct(')'):
                depth -= 1
                if depth == 0:
                    return inner
            inner.append(token)
        raise self.error("Unbalanced parentheses")

    def skip_to(self, stops: Iterable[str] = (',', ')')) -> List[Token]:
        """Consume tokens until a depth-0 punctuation in stops (not consumed)"""
        stops = tuple(stops)
        depth = 0
        skipped = []
        while not self.at_end():
            token = self.peek()
            if depth == 0 and token.kind == PUNCT and token.value in stops:
                break
            if token.is_punct('('):
                depth += 1
            elif token.is_punct(')'):
                if depth == 0:
                    break
                depth -= 1
            skipped.append(self.next())
        return skipped

    def text_between(self, first: Token, last: Token) -> str:
        return self.source[first.start:last.end]

    def error(self, message: str) -> ParseError:
        token = self.peek()
        if token is None:
            return ParseError(f"{message} at end of statement")
        return ParseError(f"{message} near '{token.text}' (line {token.line}, column {token.col})")
