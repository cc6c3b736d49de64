"""
DDL parser - recovers a schema graph from CREATE TYPE / CREATE TABLE / ALTER TABLE text

Parsing runs in ordered phases:
  1. enum extraction (CREATE TYPE ... AS ENUM)
  2. table extraction (CREATE TABLE, then CREATE INDEX)
  3. out-of-line relationship extraction (ALTER TABLE ... ADD ... FOREIGN KEY)
  4. pending foreign key resolution against the complete table map
  5. identity reconciliation against the previous graph
"""
import logging
import re
from typing import Dict, List, Optional, Tuple

from .errors import ApplyError, ParseError
from .reconciler import reconcile_graph
from .schema_model import (
    Column, EnumType, ForeignKeyRef, Relationship, SchemaGraph, Table,
    ENUM_TYPE_PREFIX, derive_cardinality,
)
from .sql_tokenizer import (
    IDENT, QUOTED, STRING, NUMBER, Statement, Token, TokenStream,
    group_statements, split_top_level, tokenize,
)
from .sql_types import TYPE_CONTINUATIONS, is_type_word, normalize_type_name

logger = logging.getLogger(__name__)

CREATE_TABLE_RE = re.compile(r'CREATE\s+(?:\w+\s+)?TABLE\b', re.IGNORECASE)

SYNTAX_ERROR_MESSAGE = "SQL syntax appears to be invalid. Check for proper table definitions."
NO_TABLES_MESSAGE = "No valid tables found in the SQL. Please check your syntax."

# words that open a new column clause; a DEFAULT expression stops before them
CLAUSE_KEYWORDS = {
    'CONSTRAINT', 'PRIMARY', 'NOT', 'NULL', 'UNIQUE', 'DEFAULT', 'REFERENCES', 'CHECK',
    'COLLATE', 'COMMENT', 'AUTO_INCREMENT', 'AUTOINCREMENT', 'GENERATED', 'ON', 'IDENTITY',
}
TABLE_CONSTRAINT_STARTERS = {'CONSTRAINT', 'PRIMARY', 'FOREIGN', 'CHECK', 'EXCLUDE', 'LIKE'}
INDEX_WORDS = {'KEY', 'INDEX', 'FULLTEXT', 'SPATIAL'}

FK_EDGE_STYLE = {'label': 'references', 'edge_type': 'smoothstep', 'animated': True}
ENUM_EDGE_STYLE = {'label': None, 'edge_type': 'smoothstep', 'animated': False}


class PendingForeignKey:
    """A foreign key seen in the text, resolved once every table is known"""

    def __init__(self, table: Table, column_name: str, ref_table: str, ref_column: Optional[str],
                 on_delete: Optional[str] = None, on_update: Optional[str] = None,
                 column: Optional[Column] = None):
        self.table = table
        self.column_name = column_name
        self.column = column
        self.ref_table = ref_table
        self.ref_column = ref_column
        self.on_delete = on_delete
        self.on_update = on_update

    def __repr__(self):
        return (f"PendingForeignKey({self.table.name}.{self.column_name} -> "
                f"{self.ref_table}.{self.ref_column or '?'})")


class _Reference:
    """Target of a REFERENCES clause"""

    def __init__(self, table: str, columns: List[str], on_delete: Optional[str], on_update: Optional[str]):
        self.table = table
        self.columns = columns
        self.on_delete = on_delete
        self.on_update = on_update


class DDLParser:
    """Recursive-descent parser over the token stream of a DDL script"""

    def __init__(self, sql: str, previous: Optional[SchemaGraph] = None):
        self.sql = sql
        self.previous = previous
        self.warnings: List[str] = []
        self.enums: List[EnumType] = []
        self.tables: List[Table] = []
        self.tables_by_name: Dict[str, Table] = {}
        self.tables_by_lower: Dict[str, Table] = {}
        self.pending_fks: List[PendingForeignKey] = []
        self.enum_uses: List[Tuple[Table, Column, EnumType]] = []
        self.matched_tables = 0

    # ------------------------------------------------------------------ entry

    def parse(self) -> Tuple[SchemaGraph, List[str]]:
        statements = group_statements(self.sql, tokenize(self.sql))
        logger.debug(f"Parsing {len(statements)} statement(s)")

        # Phase 1: enum types
        for statement in statements:
            if self._is_create_type(statement):
                self._guarded(self.parse_create_type, statement)

        # Phase 2: tables, then indexes once every table exists
        for statement in statements:
            if self._is_create_table(statement):
                self._guarded(self.parse_create_table, statement)
        for statement in statements:
            if self._is_create_index(statement):
                self._guarded(self.parse_create_index, statement)

        if self.matched_tables == 0 and CREATE_TABLE_RE.search(self.sql):
            raise ParseError(SYNTAX_ERROR_MESSAGE)

        # Phase 3: out-of-line relationships
        for statement in statements:
            if statement.starts_with('ALTER', 'TABLE'):
                self._guarded(self.parse_alter_table, statement)

        for statement in statements:
            if not (self._is_create_type(statement) or self._is_create_table(statement)
                    or self._is_create_index(statement) or statement.starts_with('ALTER', 'TABLE')):
                logger.debug(f"Skipping unsupported statement: {statement.text[:60]}")

        kept = self._drop_empty_tables()
        if not kept:
            raise ApplyError(NO_TABLES_MESSAGE)

        # Phase 4: resolve foreign keys, schedule enum links
        edges = self.resolve_foreign_keys()
        edges.extend(self._enum_link_edges())

        # Phase 5: identity reconciliation
        candidate = SchemaGraph(kept, self.enums, edges)
        graph = reconcile_graph(self.previous, candidate)
        logger.info(f"Parsed {len(graph.tables)} table(s), {len(graph.enums)} enum(s), "
                    f"{len(graph.edges)} edge(s) with {len(self.warnings)} warning(s)")
        return graph, self.warnings

    def warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def _guarded(self, handler, statement: Statement):
        """Run a statement production; a malformed statement is skipped with a warning"""
        try:
            handler(TokenStream(statement.tokens, self.sql))
        except ParseError as e:
            self.warn(f"Skipped statement '{_preview(statement.text)}': {e}")

    @staticmethod
    def _is_create_type(statement: Statement) -> bool:
        return statement.starts_with('CREATE', 'TYPE') or statement.starts_with('CREATE', 'OR', 'REPLACE', 'TYPE')

    @staticmethod
    def _is_create_table(statement: Statement) -> bool:
        tokens = statement.tokens
        if not tokens or not tokens[0].is_keyword('CREATE'):
            return False
        for token in tokens[1:4]:
            if token.is_keyword('TABLE'):
                return True
            if not token.is_keyword('TEMP', 'TEMPORARY', 'UNLOGGED', 'GLOBAL', 'LOCAL', 'OR', 'REPLACE'):
                return False
        return False

    @staticmethod
    def _is_create_index(statement: Statement) -> bool:
        return statement.starts_with('CREATE', 'INDEX') or statement.starts_with('CREATE', 'UNIQUE', 'INDEX')

    # ------------------------------------------------------- phase 1: enums

    def parse_create_type(self, stream: TokenStream):
        stream.expect('CREATE')
        stream.accept('OR', 'REPLACE')
        stream.expect('TYPE')
        name = self.parse_qualified_name(stream)
        stream.expect('AS')
        if not stream.accept('ENUM'):
            logger.debug(f"Type {name} is not an enum, ignored")
            return
        values = [tok.value for tok in stream.skip_balanced() if tok.kind == STRING]

        if self._find_enum(name) is not None:
            self.warn(f"Duplicate enum type {name} ignored")
            return
        enum = EnumType(name, values, enum_id=f"pending-enum-{len(self.enums)}")
        if len(enum.values) != len(values):
            self.warn(f"Enum {name} lists duplicate values; duplicates were dropped")
        self.enums.append(enum)

    def _find_enum(self, type_name: str) -> Optional[EnumType]:
        """Enum referenced by a column type, by exact name or the enum_<name> spelling"""
        wanted = type_name.lower()
        if wanted.startswith(ENUM_TYPE_PREFIX):
            alias = wanted[len(ENUM_TYPE_PREFIX):]
        else:
            alias = None
        for enum in self.enums:
            if enum.name.lower() == wanted:
                return enum
        if alias:
            for enum in self.enums:
                if enum.name.lower() == alias:
                    return enum
        return None

    # ------------------------------------------------------ phase 2: tables

    def parse_create_table(self, stream: TokenStream):
        stream.expect('CREATE')
        stream.accept('OR', 'REPLACE')
        while stream.accept('GLOBAL') or stream.accept('LOCAL') or stream.accept('TEMP') \
                or stream.accept('TEMPORARY') or stream.accept('UNLOGGED'):
            pass
        stream.expect('TABLE')
        stream.accept('IF', 'NOT', 'EXISTS')
        name = self.parse_qualified_name(stream)
        if stream.at_keyword('AS', 'LIKE'):
            self.matched_tables += 1
            self.warn(f"Table {name} is created from a query; its columns cannot be recovered")
            return
        body = stream.skip_balanced()
        self.matched_tables += 1

        if name.lower() in self.tables_by_lower:
            self.warn(f"Duplicate table {name} ignored")
            return

        table = Table(name, table_id=f"pending-table-{len(self.tables)}")
        self.tables.append(table)
        self.tables_by_name[name] = table
        self.tables_by_lower.setdefault(name.lower(), table)

        deferred = []
        for element in split_top_level(body):
            if not element:
                continue
            element_stream = TokenStream(element, self.sql)
            try:
                if self._is_table_constraint(element):
                    deferred.append(element_stream)
                else:
                    self.parse_column_definition(element_stream, table)
            except ParseError as e:
                self.warn(f"Skipped definition '{_preview(_join(self.sql, element))}' in table {name}: {e}")

        for element_stream in deferred:
            try:
                self.parse_table_constraint(element_stream, table)
            except ParseError as e:
                self.warn(f"Skipped constraint in table {name}: {e}")

    def _is_table_constraint(self, element: List[Token]) -> bool:
        first = element[0]
        if first.kind != IDENT:
            return False
        word = first.upper
        second = element[1] if len(element) > 1 else None
        if word in TABLE_CONSTRAINT_STARTERS:
            if word == 'PRIMARY' or word == 'FOREIGN':
                return second is not None and second.is_keyword('KEY')
            if word == 'CHECK':
                return second is not None and second.is_punct('(')
            return True
        if word == 'UNIQUE' or word in INDEX_WORDS:
            return self._opens_column_list(element, 1)
        return False

    def _opens_column_list(self, element: List[Token], index: int) -> bool:
        """[KEY|INDEX ...] [name] ( : an index definition rather than a column named key or index"""
        while index < len(element) and element[index].is_keyword(*INDEX_WORDS):
            index += 1
        if index >= len(element):
            return False
        if element[index].is_punct('('):
            return True
        name = element[index]
        if not name.is_name or is_type_word(name.value) or self._find_enum(name.value) is not None:
            return False
        return index + 1 < len(element) and element[index + 1].is_punct('(')

    def parse_column_definition(self, stream: TokenStream, table: Table) -> Column:
        name_token = stream.expect_name()
        title = name_token.value
        type_name, params, inline_values = self.parse_column_type(stream)

        constraints = []
        enum = None
        if type_name is None:
            type_name = 'text'
        elif inline_values is not None:
            enum = self._inline_enum(table.name, title, inline_values)
        else:
            enum = self._find_enum(type_name)

        if enum is not None:
            data_type = enum.type_name
            params = []
        else:
            data_type, implies_primary = normalize_type_name(type_name)
            if implies_primary:
                constraints.append('primary')

        column = Column(title, data_type, params=params, constraints=constraints)
        self.parse_column_clauses(stream, table, column)

        unique_title = table.unique_title(title)
        if unique_title != title:
            self.warn(f"Duplicate column {title} in table {table.name} renamed to {unique_title}")
        table.add_column(column)
        if enum is not None:
            self.enum_uses.append((table, column, enum))
        return column

    def parse_column_type(self, stream: TokenStream):
        """
        Read a column type

        Returns:
            Tuple of (type name or None, params, inline enum values or None)
        """
        token = stream.peek()
        if token is None or token.kind not in (IDENT, QUOTED) or token.is_keyword(*CLAUSE_KEYWORDS):
            return None, [], None

        words = [stream.next().value]
        while stream.peek() is not None and stream.peek().kind == IDENT \
                and stream.peek().upper in TYPE_CONTINUATIONS:
            words.append(stream.next().value)
        type_name = ' '.join(words)

        params: List[str] = []
        inline_values = None
        if stream.at_punct('('):
            inner = stream.skip_balanced()
            if type_name.lower() in ('enum', 'set'):
                inline_values = [tok.value for tok in inner if tok.kind == STRING]
            else:
                params = [_join(self.sql, part) for part in split_top_level(inner) if part]
            # "timestamp(3) with time zone"
            while stream.peek() is not None and stream.peek().kind == IDENT \
                    and stream.peek().upper in TYPE_CONTINUATIONS:
                type_name += ' ' + stream.next().value

        while stream.accept('UNSIGNED') or stream.accept('ZEROFILL'):
            pass
        while stream.accept_punct('['):
            if stream.peek() is not None and stream.peek().kind == NUMBER:
                stream.next()
            stream.expect_punct(']')
            type_name += '[]'
        return type_name, params, inline_values

    def _inline_enum(self, table_name: str, column_name: str, values: List[str]) -> EnumType:
        """MySQL ENUM('a', 'b') column types become a named enum"""
        base = f"{table_name}_{column_name}"
        name = base
        suffix = 2
        while self._find_enum(name) is not None:
            name = f"{base}_{suffix}"
            suffix += 1
        enum = EnumType(name, values, enum_id=f"pending-enum-{len(self.enums)}")
        self.enums.append(enum)
        return enum

    def parse_column_clauses(self, stream: TokenStream, table: Table, column: Column):
        while not stream.at_end():
            if stream.accept('CONSTRAINT'):
                stream.expect_name()
            elif stream.accept('PRIMARY', 'KEY'):
                column.add_constraint('primary')
                stream.accept('ASC') or stream.accept('DESC')
            elif stream.accept('NOT', 'NULL'):
                column.add_constraint('notnull')
            elif stream.accept('NULL'):
                continue
            elif stream.accept('UNIQUE'):
                stream.accept('KEY')
                column.add_constraint('unique')
            elif stream.accept('DEFAULT'):
                column.default = self.parse_default(stream)
            elif stream.accept('REFERENCES'):
                ref = self.parse_reference(stream)
                self.pending_fks.append(PendingForeignKey(
                    table, column.title, ref.table, ref.columns[0] if ref.columns else None,
                    ref.on_delete, ref.on_update, column=column))
            elif stream.at_keyword('CHECK'):
                stream.next()
                stream.skip_balanced()
            elif stream.accept('COLLATE') or stream.accept('COMMENT'):
                stream.next()
            elif stream.accept('GENERATED'):
                self._skip_generated(stream)
            elif stream.accept('ON', 'UPDATE'):
                stream.next()
                if stream.at_punct('('):
                    stream.skip_balanced()
            else:
                # AUTO_INCREMENT, AUTOINCREMENT, IDENTITY and anything unknown
                stream.next()

    @staticmethod
    def _skip_generated(stream: TokenStream):
        while not stream.at_end():
            if stream.at_punct('('):
                stream.skip_balanced()
            elif stream.at_keyword('ALWAYS', 'BY', 'DEFAULT', 'AS', 'IDENTITY', 'STORED', 'VIRTUAL'):
                stream.next()
            else:
                return

    def parse_default(self, stream: TokenStream) -> Optional[str]:
        """Read a DEFAULT expression; a lone string literal is returned unquoted"""
        if stream.at_end():
            raise stream.error("Expected a default value")
        first_index = stream.pos
        while not stream.at_end():
            token = stream.peek()
            if stream.pos > first_index and token.is_keyword(*CLAUSE_KEYWORDS):
                break
            if token.is_punct('('):
                stream.skip_balanced()
            else:
                stream.next()

        consumed = stream.tokens[first_index:stream.pos]
        if len(consumed) == 1 and consumed[0].kind == STRING:
            return consumed[0].value
        text = self.sql[consumed[0].start:consumed[-1].end]
        if text.upper() == 'NULL':
            return None
        return text

    def parse_reference(self, stream: TokenStream) -> _Reference:
        """REFERENCES table [(cols)] [MATCH ...] [ON DELETE action] [ON UPDATE action]"""
        table = self.parse_qualified_name(stream)
        columns = []
        if stream.at_punct('('):
            columns = self._name_list(stream.skip_balanced())
        on_delete = on_update = None
        while not stream.at_end():
            if stream.accept('ON', 'DELETE'):
                on_delete = self.parse_action(stream)
            elif stream.accept('ON', 'UPDATE'):
                on_update = self.parse_action(stream)
            elif stream.accept('MATCH'):
                stream.next()
            elif stream.accept('NOT', 'DEFERRABLE') or stream.accept('DEFERRABLE'):
                continue
            elif stream.accept('INITIALLY'):
                stream.next()
            else:
                break
        return _Reference(table, columns, on_delete, on_update)

    @staticmethod
    def parse_action(stream: TokenStream) -> str:
        if stream.accept('NO', 'ACTION'):
            return 'NO ACTION'
        if stream.accept('SET', 'NULL'):
            return 'SET NULL'
        if stream.accept('SET', 'DEFAULT'):
            return 'SET DEFAULT'
        return stream.next().upper

    @staticmethod
    def parse_qualified_name(stream: TokenStream) -> str:
        """schema.table -> table"""
        name = stream.expect_name().value
        while stream.accept_punct('.'):
            name = stream.expect_name().value
        return name

    @staticmethod
    def _name_list(tokens: List[Token]) -> List[str]:
        names = []
        for part in split_top_level(tokens):
            if part and part[0].is_name:
                names.append(part[0].value)
        return names

    def parse_table_constraint(self, stream: TokenStream, table: Table):
        if stream.accept('CONSTRAINT'):
            stream.expect_name()

        if stream.accept('PRIMARY', 'KEY'):
            for name in self._name_list(stream.skip_balanced()):
                self._merge_constraint(table, name, 'primary')
        elif stream.accept('FOREIGN', 'KEY'):
            if not stream.at_punct('('):
                stream.expect_name()
            columns = self._name_list(stream.skip_balanced())
            stream.expect('REFERENCES')
            ref = self.parse_reference(stream)
            self._add_pending(table, columns, ref)
        elif stream.accept('UNIQUE'):
            stream.accept('KEY') or stream.accept('INDEX')
            if not stream.at_punct('('):
                stream.expect_name()
            columns = self._name_list(stream.skip_balanced())
            if len(columns) == 1:
                self._merge_constraint(table, columns[0], 'unique')
        elif stream.at_keyword(*INDEX_WORDS):
            while stream.at_keyword(*INDEX_WORDS):
                stream.next()
            if not stream.at_punct('('):
                stream.expect_name()
            columns = self._name_list(stream.skip_balanced())
            if len(columns) == 1:
                self._merge_constraint(table, columns[0], 'index')
        else:
            # CHECK, EXCLUDE, LIKE
            logger.debug(f"Ignoring table constraint in {table.name}")

    def _merge_constraint(self, table: Table, column_name: str, constraint: str):
        column = table.get_column(column_name)
        if column is None:
            logger.debug(f"{constraint} constraint on unknown column {table.name}.{column_name} ignored")
            return
        column.add_constraint(constraint)

    def _add_pending(self, table: Table, columns: List[str], ref: _Reference):
        for index, column_name in enumerate(columns):
            ref_column = ref.columns[index] if index < len(ref.columns) else None
            self.pending_fks.append(PendingForeignKey(
                table, column_name, ref.table, ref_column, ref.on_delete, ref.on_update))

    def parse_create_index(self, stream: TokenStream):
        stream.expect('CREATE')
        unique = stream.accept('UNIQUE')
        stream.expect('INDEX')
        stream.accept('CONCURRENTLY')
        stream.accept('IF', 'NOT', 'EXISTS')
        if not stream.at_keyword('ON'):
            stream.expect_name()
        stream.expect('ON')
        stream.accept('ONLY')
        table = self.lookup_table(self.parse_qualified_name(stream))
        if stream.accept('USING'):
            stream.next()
        parts = [p for p in split_top_level(stream.skip_balanced()) if p]
        if table is None or len(parts) != 1 or not parts[0][0].is_name:
            return
        self._merge_constraint(table, parts[0][0].value, 'unique' if unique else 'index')

    # ----------------------------------------- phase 3: ALTER TABLE clauses

    def parse_alter_table(self, stream: TokenStream):
        stream.expect('ALTER', 'TABLE')
        stream.accept('IF', 'EXISTS')
        stream.accept('ONLY')
        name = self.parse_qualified_name(stream)
        table = self.lookup_table(name)
        if table is None:
            self.warn(f"ALTER TABLE references unknown table {name}; statement ignored")
            return

        remaining = []
        while not stream.at_end():
            remaining.append(stream.next())
        for action in split_top_level(remaining):
            if action:
                self.parse_alter_action(TokenStream(action, self.sql), table)

    def parse_alter_action(self, stream: TokenStream, table: Table):
        if not stream.accept('ADD'):
            logger.debug(f"Ignoring ALTER TABLE action on {table.name}")
            return
        if stream.at_keyword('CONSTRAINT', 'PRIMARY', 'FOREIGN', 'UNIQUE', 'CHECK'):
            self.parse_table_constraint(stream, table)
            return
        stream.accept('COLUMN')
        stream.accept('IF', 'NOT', 'EXISTS')
        self.parse_column_definition(stream, table)

    def lookup_table(self, name: str) -> Optional[Table]:
        """Resolve a table name: exact first, then case-insensitive"""
        return self.tables_by_name.get(name) or self.tables_by_lower.get(name.lower())

    # --------------------------------------------- phase 4: FK resolution

    def _drop_empty_tables(self) -> List[Table]:
        kept = []
        for table in self.tables:
            if table.columns:
                kept.append(table)
            else:
                self.warn(f"Table {table.name} has no columns and was skipped")
        return kept

    def resolve_foreign_keys(self) -> List[Relationship]:
        edges = []
        for pending in self.pending_fks:
            if not pending.table.columns:
                continue
            column = pending.column or pending.table.get_column(pending.column_name)
            if column is None:
                self.warn(f"Foreign key on unknown column {pending.table.name}.{pending.column_name} ignored")
                continue

            target = self.lookup_table(pending.ref_table)
            target_column = None
            if target is not None and target.columns:
                if pending.ref_column:
                    target_column = target.get_column(pending.ref_column)
                else:
                    target_column = (target.primary_columns or [None])[0] or target.get_column('id')

            if target_column is None:
                ref_column = pending.ref_column or 'id'
                column.foreign_key = ForeignKeyRef(pending.ref_table, ref_column, pending.on_delete,
                                                   pending.on_update, resolved=False)
                self.warn(f"Foreign key {pending.table.name}.{column.title} references "
                          f"{pending.ref_table}.{ref_column}, which is not defined")
                continue

            column.foreign_key = ForeignKeyRef(target.name, target_column.title,
                                               pending.on_delete, pending.on_update)
            edges.append(Relationship(
                pending.table.id, f"source-{column.title}",
                target.id, f"target-{target_column.title}",
                cardinality=derive_cardinality(column.is_unique, target_column.is_unique),
                on_delete=pending.on_delete, on_update=pending.on_update,
                **FK_EDGE_STYLE))
        return edges

    def _enum_link_edges(self) -> List[Relationship]:
        edges = []
        for table, column, enum in self.enum_uses:
            if not table.columns:
                continue
            edges.append(Relationship(
                enum.id, f"source-{enum.name}", table.id, f"target-{column.title}",
                cardinality='oneToMany', enum_link=True, **ENUM_EDGE_STYLE))
        return edges


def _join(sql: str, tokens: List[Token]) -> str:
    return sql[tokens[0].start:tokens[-1].end] if tokens else ''


def _preview(text: str, limit: int = 60) -> str:
    text = ' '.join(text.split())
    return text if len(text) <= limit else text[:limit - 3] + '...'


def parse_sql(sql: str, previous: Optional[SchemaGraph] = None) -> Tuple[SchemaGraph, List[str]]:
    """
    Parse DDL text into a schema graph

    Args:
        sql: SQL text with CREATE TYPE / CREATE TABLE / ALTER TABLE statements
        previous: graph being replaced; matching tables, enums and edges keep
            their identity and cosmetic state

    Returns:
        Tuple of (new graph, warnings)

    Raises:
        ParseError: the text is malformed or no table statement could be read
        ApplyError: parsing succeeded but produced no usable table
    """
    return DDLParser(sql, previous).parse()
