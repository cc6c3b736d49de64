"""
SQL auto-fixes applied before validation

Each pass is idempotent and usable on its own; normalize_sql composes them.
"""
import logging
import re
from typing import Dict, List, Tuple

from .sql_tokenizer import COMMENT, STRING, Token, tokenize
from .sql_validator import starts_new_definition

logger = logging.getLogger(__name__)

FK_SECTION_HEADER = "-- Foreign Key Constraints"
PLACEHOLDER_RE = re.compile(r'__SCHEMA_SYNC_(COMMENT|STRING)_(\d+)__')

_WORD = r'(?!(?:IF|ADD|DROP|ALTER|RENAME|ONLY)\b|__SCHEMA_SYNC_)[A-Za-z_]\w*'
_SPACED_NAME = rf'{_WORD}(?:[ \t]+{_WORD})+'

CREATE_TABLE_NAME_RE = re.compile(
    rf'(CREATE\s+(?:(?:TEMP|TEMPORARY)\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?)({_SPACED_NAME})(\s*\()',
    re.IGNORECASE)
ALTER_TABLE_NAME_RE = re.compile(
    rf'(ALTER\s+TABLE\s+(?:ONLY\s+)?(?:IF\s+EXISTS\s+)?)({_SPACED_NAME})(\s+ADD\b)',
    re.IGNORECASE)
REFERENCES_NAME_RE = re.compile(
    rf'(REFERENCES\s+)({_SPACED_NAME})(\s*\()',
    re.IGNORECASE)


def protect_literals(sql: str) -> Tuple[str, Dict[str, str]]:
    """
    Replace comments and string literals with deterministic placeholders

    Returns:
        Tuple of (protected text, placeholder -> original text)
    """
    saved: Dict[str, str] = {}
    pieces: List[str] = []
    last = 0
    counters = {COMMENT: 0, STRING: 0}
    for token in tokenize(sql, keep_comments=True, strict=False):
        if token.kind not in counters:
            continue
        placeholder = f"__SCHEMA_SYNC_{token.kind}_{counters[token.kind]}__"
        counters[token.kind] += 1
        saved[placeholder] = sql[token.start:token.end]
        pieces.append(sql[last:token.start])
        pieces.append(placeholder)
        last = token.end
    pieces.append(sql[last:])
    return ''.join(pieces), saved


def restore_literals(sql: str, saved: Dict[str, str]) -> str:
    return PLACEHOLDER_RE.sub(lambda m: saved.get(m.group(0), m.group(0)), sql)


def quote_spaced_identifiers(sql: str) -> str:
    """Double-quote bare multi-word table names after CREATE TABLE, ALTER TABLE and REFERENCES"""
    protected, saved = protect_literals(sql)

    def quote(match):
        name = ' '.join(match.group(2).split())
        return f'{match.group(1)}"{name}"{match.group(3)}'

    fixed = CREATE_TABLE_NAME_RE.sub(quote, protected)
    fixed = ALTER_TABLE_NAME_RE.sub(quote, fixed)
    fixed = REFERENCES_NAME_RE.sub(quote, fixed)
    return restore_literals(fixed, saved)


def remove_duplicate_alter_statements(sql: str) -> str:
    """Drop repeated ALTER TABLE ... ADD CONSTRAINT lines inside the foreign key section"""
    seen = set()
    result = []
    in_section = False
    removed = 0
    for line in sql.split('\n'):
        stripped = line.strip()
        if stripped.startswith('--'):
            in_section = stripped == FK_SECTION_HEADER
        elif in_section and re.match(r'ALTER\s+TABLE\b.*\bADD\s+CONSTRAINT\b', stripped, re.IGNORECASE):
            if stripped in seen:
                removed += 1
                continue
            seen.add(stripped)
        result.append(line)
    if removed:
        logger.info(f"Removed {removed} duplicate ALTER TABLE statement(s)")
    return '\n'.join(result)


def _create_table_bodies(tokens: List[Token]) -> List[List[Token]]:
    """Token runs inside the parentheses of every CREATE TABLE statement"""
    bodies = []
    index = 0
    statement_start = True
    while index < len(tokens):
        token = tokens[index]
        if token.is_punct(';'):
            statement_start = True
            index += 1
            continue
        if statement_start and token.is_keyword('CREATE'):
            lookahead = tokens[index + 1:index + 4]
            if any(t.is_keyword('TABLE') for t in lookahead):
                while index < len(tokens) and not tokens[index].is_punct('(') and not tokens[index].is_punct(';'):
                    index += 1
                if index < len(tokens) and tokens[index].is_punct('('):
                    depth = 0
                    start = index + 1
                    while index < len(tokens):
                        if tokens[index].is_punct('('):
                            depth += 1
                        elif tokens[index].is_punct(')'):
                            depth -= 1
                            if depth == 0:
                                break
                        elif tokens[index].is_punct(';'):
                            break
                        index += 1
                    bodies.append(tokens[start:index])
                statement_start = False
                continue
        statement_start = False
        index += 1
    return bodies


def insert_missing_commas(sql: str) -> str:
    """
    Add a comma to a body-level line of a CREATE TABLE when the next
    meaningful line starts a new column definition or table constraint
    """
    tokens = [t for t in tokenize(sql, keep_comments=True, strict=False) if t.kind != COMMENT]
    insert_at = []
    for body in _create_table_bodies(tokens):
        lines: List[List[Token]] = []
        depth = 0
        for token in body:
            if not lines or (token.line != lines[-1][-1].line and depth == 0):
                lines.append([token])
            else:
                lines[-1].append(token)
            if token.is_punct('('):
                depth += 1
            elif token.is_punct(')'):
                depth -= 1
        for previous, line in zip(lines, lines[1:]):
            last = previous[-1]
            if last.is_punct(',') or line[0].is_punct(','):
                continue
            if starts_new_definition(line):
                insert_at.append(last.end)

    if not insert_at:
        return sql
    logger.info(f"Inserted {len(insert_at)} missing comma(s)")
    fixed = sql
    for offset in sorted(insert_at, reverse=True):
        fixed = fixed[:offset] + ',' + fixed[offset:]
    return fixed


def normalize_sql(sql: str) -> str:
    """Apply every auto-fix pass; normalize_sql(normalize_sql(x)) == normalize_sql(x)"""
    fixed = quote_spaced_identifiers(sql)
    fixed = remove_duplicate_alter_statements(fixed)
    return insert_missing_commas(fixed)
