"""
Pre-parse SQL checks - fast heuristics run before a script is applied

Findings are plain strings. Those starting with "Warning:" are advisory; any
other finding blocks the apply.
"""
import logging
from typing import Dict, List, Optional, Tuple

from .errors import TokenizeError
from .sql_tokenizer import IDENT, Statement, Token, group_statements, split_top_level, tokenize
from .sql_types import is_type_word

logger = logging.getLogger(__name__)

WARNING_PREFIX = "Warning:"
CONSTRAINT_STARTERS = {'PRIMARY', 'FOREIGN', 'CONSTRAINT', 'UNIQUE', 'CHECK', 'KEY', 'INDEX', 'EXCLUDE'}
CLAUSE_WORDS = {
    'NOT', 'NULL', 'DEFAULT', 'REFERENCES', 'ON', 'PRIMARY', 'UNIQUE', 'CHECK', 'COLLATE',
    'CONSTRAINT', 'GENERATED', 'AUTO_INCREMENT', 'AUTOINCREMENT', 'COMMENT',
}


class ValidationResult:
    """Outcome of validate_sql"""

    def __init__(self, findings: Optional[List[str]] = None):
        self.findings = list(findings or [])

    @property
    def errors(self) -> List[str]:
        return [f for f in self.findings if not f.startswith(WARNING_PREFIX)]

    @property
    def warnings(self) -> List[str]:
        return [f for f in self.findings if f.startswith(WARNING_PREFIX)]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict:
        return {
            "isValid": self.is_valid,
            "findings": list(self.findings),
            "errors": self.errors,
            "warnings": self.warnings,
        }

    def __repr__(self):
        return f"ValidationResult(is_valid={self.is_valid}, findings={len(self.findings)})"


def _is_create_table(tokens: List[Token]) -> bool:
    if not tokens or not tokens[0].is_keyword('CREATE'):
        return False
    for token in tokens[1:4]:
        if token.is_keyword('TABLE'):
            return True
        if not token.is_keyword('TEMP', 'TEMPORARY', 'UNLOGGED', 'GLOBAL', 'LOCAL', 'OR', 'REPLACE'):
            return False
    return False


def _name_after(tokens: List[Token], index: int) -> Tuple[Optional[str], int]:
    """Read a possibly schema-qualified name starting at index; returns (name, next index)"""
    if index >= len(tokens) or not tokens[index].is_name:
        return None, index
    name = tokens[index].value
    index += 1
    while index + 1 < len(tokens) and tokens[index].is_punct('.') and tokens[index + 1].is_name:
        name = tokens[index + 1].value
        index += 2
    return name, index


def _table_name(tokens: List[Token]) -> Optional[str]:
    index = 0
    while index < len(tokens) and not tokens[index].is_keyword('TABLE'):
        index += 1
    index += 1
    for word in ('IF', 'NOT', 'EXISTS'):
        if index < len(tokens) and tokens[index].is_keyword(word):
            index += 1
    if index < len(tokens) and tokens[index].is_keyword('ONLY'):
        index += 1
    name, _ = _name_after(tokens, index)
    return name


def _body_tokens(tokens: List[Token]) -> Optional[List[Token]]:
    """Tokens inside the first parenthesised group of a statement"""
    start = None
    depth = 0
    for index, token in enumerate(tokens):
        if token.is_punct('('):
            if start is None:
                start = index
            depth += 1
        elif token.is_punct(')') and start is not None:
            depth -= 1
            if depth == 0:
                return tokens[start + 1:index]
    if start is None:
        return None
    return tokens[start + 1:]


def _references(tokens: List[Token]) -> List[Tuple[str, Optional[str]]]:
    """(table, column) pairs named by REFERENCES clauses"""
    refs = []
    for index, token in enumerate(tokens):
        if not token.is_keyword('REFERENCES'):
            continue
        table, after = _name_after(tokens, index + 1)
        if table is None:
            continue
        column = None
        if after + 1 < len(tokens) and tokens[after].is_punct('(') and tokens[after + 1].is_name:
            column = tokens[after + 1].value
        refs.append((table, column))
    return refs


def _line_text(sql: str, token: Token) -> str:
    start = sql.rfind('\n', 0, token.start) + 1
    end = sql.find('\n', token.start)
    return sql[start:len(sql) if end == -1 else end].strip()


def starts_new_definition(line_tokens: List[Token]) -> bool:
    """True when a line looks like the start of a column definition or table constraint"""
    first = line_tokens[0]
    second = line_tokens[1] if len(line_tokens) > 1 else None
    if first.is_keyword('CONSTRAINT'):
        return True
    if first.is_keyword('FOREIGN') and second is not None and second.is_keyword('KEY'):
        return True
    if first.is_keyword('PRIMARY') and second is not None and second.is_keyword('KEY'):
        # a bare PRIMARY KEY line is a clause of the previous column
        return len(line_tokens) > 2 and line_tokens[2].is_punct('(')
    if not first.is_name or first.is_keyword(*CLAUSE_WORDS):
        return False
    return second is not None and second.kind == IDENT and is_type_word(second.value)


def _missing_commas(sql: str, element: List[Token]) -> List[str]:
    findings = []
    lines: List[List[Token]] = []
    depth = 0
    for token in element:
        # only lines starting at the element's own depth can begin a definition
        if not lines or (token.line != lines[-1][-1].line and depth == 0):
            lines.append([token])
        else:
            lines[-1].append(token)
        if token.is_punct('('):
            depth += 1
        elif token.is_punct(')'):
            depth -= 1
    for previous, line in zip(lines, lines[1:]):
        if starts_new_definition(line):
            findings.append(f'Possible missing comma after column definition: "{_line_text(sql, previous[0])}"')
    return findings


def _check_create_table(sql: str, statement: Statement, table_names: Dict[str, str], findings: List[str]):
    tokens = statement.tokens
    name = _table_name(tokens)
    body = _body_tokens(tokens)
    if body is None:
        findings.append("Incomplete CREATE TABLE statement missing column definitions")

    if name:
        key = name.lower()
        if key in table_names:
            findings.append(f"Duplicate table name: {name}")
        else:
            table_names[key] = name

    if not body:
        return

    columns = set()
    for element in split_top_level(body):
        if not element:
            continue
        findings.extend(_missing_commas(sql, element))
        first = element[0]
        if first.kind == IDENT and first.upper in CONSTRAINT_STARTERS:
            continue
        if not first.is_name:
            continue
        column = first.value.lower()
        if column in columns:
            findings.append(f'Duplicate column name "{first.value}" in table {name}')
        columns.add(column)


def validate_sql(sql: str) -> ValidationResult:
    """
    Validate SQL text before parsing

    Args:
        sql: SQL script

    Returns:
        ValidationResult; is_valid is False when any blocking finding exists
    """
    findings: List[str] = []
    if not sql or not sql.strip():
        return ValidationResult(["SQL cannot be empty"])

    try:
        tokens = tokenize(sql)
    except TokenizeError as e:
        findings.append(str(e))
        tokens = tokenize(sql, strict=False)

    statements = group_statements(sql, tokens)
    if not any(_is_create_table(s.tokens) for s in statements):
        findings.append("SQL must contain at least one CREATE TABLE statement")
        return ValidationResult(findings)

    opening = sum(1 for t in tokens if t.is_punct('('))
    closing = sum(1 for t in tokens if t.is_punct(')'))
    if opening != closing:
        findings.append(f"Mismatched parentheses: {opening} opening vs {closing} closing")

    table_names: Dict[str, str] = {}
    for statement in statements:
        if _is_create_table(statement.tokens):
            _check_create_table(sql, statement, table_names, findings)

    # references are checked once every table name is known
    for statement in statements:
        is_alter = statement.starts_with('ALTER', 'TABLE')
        if is_alter:
            name = _table_name(statement.tokens)
            if name and name.lower() not in table_names:
                findings.append(f'{WARNING_PREFIX} ALTER TABLE references table "{name}" '
                                f'which is not defined in this SQL')
        for table, column in _references(statement.tokens):
            if table.lower() in table_names or (column or '').lower() == 'id':
                continue
            where = "Foreign key in ALTER TABLE" if is_alter else "Foreign key"
            findings.append(f'{WARNING_PREFIX} {where} references table "{table}" '
                            f'which is not defined in this SQL')

    result = ValidationResult(findings)
    if findings:
        logger.debug(f"Validation found {len(result.errors)} error(s), {len(result.warnings)} warning(s)")
    return result
