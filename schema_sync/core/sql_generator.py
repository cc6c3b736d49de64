"""
DDL Generator - renders a schema graph as dialect-specific SQL
"""
import logging
import re
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .schema_model import Column, EnumType, SchemaGraph, Settings, Table, DIALECTS
from .sql_types import is_serial, map_schema_type_to_sql_type

logger = logging.getLogger(__name__)

FK_SECTION_HEADER = "-- Foreign Key Constraints"
PLAIN_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
NUMBER_RE = re.compile(r'^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$')
_CAST = r"(?:::[A-Za-z_][\w ]*(?:\(\d+(?:\s*,\s*\d+)?\))?(?:\[\])?)"
# now(), nextval('s'::regclass), now()::date
FUNCTION_DEFAULT_RE = re.compile(r"^[A-Za-z_][\w.]*\(.*\)" + _CAST + r"*$")
# 'draft'::post_status
CAST_LITERAL_RE = re.compile(r"^'(?:[^']|'')*'" + _CAST + r"+$")
RAW_DEFAULT_WORDS = {
    'TRUE', 'FALSE', 'NULL', 'CURRENT_TIMESTAMP', 'CURRENT_DATE', 'CURRENT_TIME',
    'LOCALTIMESTAMP', 'LOCALTIME', 'CURRENT_USER',
}


class ForeignKeySpec:
    """One foreign key to render, by table and column names"""

    def __init__(self, table: Table, column: str, target_table: str, target_column: str,
                 on_delete: Optional[str] = None, on_update: Optional[str] = None):
        self.table = table
        self.column = column
        self.target_table = target_table
        self.target_column = target_column
        self.on_delete = on_delete
        self.on_update = on_update

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (self.table.name.lower(), self.column.lower(),
                self.target_table.lower(), self.target_column.lower())

    def __repr__(self):
        return f"ForeignKeySpec({self.table.name}.{self.column} -> {self.target_table}.{self.target_column})"


def sanitize_name(name: str) -> str:
    """Lower-case and turn every non-alphanumeric character into an underscore"""
    return re.sub(r'[^a-z0-9]', '_', name.lower())


def format_default(value: str) -> str:
    """Render a stored default: literals and expressions raw, anything else quoted"""
    text = str(value).strip()
    if NUMBER_RE.match(text) or text.upper() in RAW_DEFAULT_WORDS:
        return text
    if CAST_LITERAL_RE.match(text):
        return text
    if FUNCTION_DEFAULT_RE.match(text) and _balanced(text):
        return text
    return "'" + text.replace("'", "''") + "'"


def _balanced(text: str) -> bool:
    depth = 0
    for char in re.sub(r"'(?:[^']|'')*'", "", text):
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


class SQLGenerator:
    """Renders CREATE TYPE / CREATE TABLE / ALTER TABLE text for one dialect"""

    def __init__(self, graph: SchemaGraph, settings: Settings):
        self.graph = graph
        self.settings = settings
        self.dialect = settings.dialect
        self.inline = settings.use_inline_constraints or self.dialect == 'sqlite'

    def quote(self, name: str) -> str:
        """Quote an identifier when it is not a plain word or identifiers are case-sensitive"""
        if PLAIN_IDENTIFIER_RE.match(name) and not self.settings.case_sensitive_identifiers:
            return name
        if self.dialect == 'mysql':
            return '`' + name.replace('`', '``') + '`'
        return '"' + name.replace('"', '""') + '"'

    def generate(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now()
        parts = [
            f"-- Generated {now.strftime('%Y-%m-%d %H:%M:%S')} for {self.dialect.upper()}",
            "-- Edit this SQL and apply changes to update your schema",
        ]

        if self.dialect == 'postgresql' and self.graph.enums:
            parts.append('')
            for enum in self.graph.enums:
                parts.append(self.render_enum(enum))

        foreign_keys = self.collect_foreign_keys()
        inline_fks: Dict[str, List[ForeignKeySpec]] = {}
        if self.inline:
            for fk in foreign_keys:
                inline_fks.setdefault(fk.table.id or fk.table.name, []).append(fk)

        for table in self.graph.tables:
            parts.append('')
            parts.append(self.render_table(table, inline_fks.get(table.id or table.name, [])))
            parts.extend(self.render_indexes(table))

        if not self.inline and foreign_keys:
            parts.append('')
            parts.append(FK_SECTION_HEADER)
            parts.extend(self.render_alter_statements(foreign_keys))

        logger.debug(f"Generated {self.dialect} SQL for {len(self.graph.tables)} table(s)")
        return '\n'.join(parts) + '\n'

    # ------------------------------------------------------------- enums

    def render_enum(self, enum: EnumType) -> str:
        values = ', '.join("'" + v.replace("'", "''") + "'" for v in enum.values)
        return f"CREATE TYPE {self.quote(enum.name)} AS ENUM ({values});"

    def enum_for(self, column: Column) -> Optional[EnumType]:
        if not column.is_enum:
            return None
        return self.graph.get_enum(column.enum_name)

    # ------------------------------------------------------------ tables

    def column_type(self, column: Column) -> str:
        if column.is_enum:
            enum = self.enum_for(column)
            if self.dialect == 'sqlite':
                return 'TEXT'
            if enum is None:
                logger.warning(f"Column {column.title} uses unknown enum {column.enum_name}")
                return self.quote(column.enum_name)
            if self.dialect == 'mysql':
                values = ', '.join("'" + v.replace("'", "''") + "'" for v in enum.values)
                return f"ENUM({values})"
            return self.quote(enum.name)

        if column.type.endswith('[]'):
            base = map_schema_type_to_sql_type(column.type[:-2], column.params, self.dialect)
            return base + '[]'
        return map_schema_type_to_sql_type(column.type, column.params, self.dialect)

    def render_table(self, table: Table, foreign_keys: List[ForeignKeySpec]) -> str:
        fks_by_column: Dict[str, List[ForeignKeySpec]] = {}
        for fk in foreign_keys:
            fks_by_column.setdefault(fk.column.lower(), []).append(fk)

        primary = table.primary_columns
        autoincrement = (self.dialect == 'sqlite' and len(primary) == 1 and is_serial(primary[0].type))
        table_level_pk = len(primary) > 1 or (
            len(primary) == 1 and not autoincrement and primary[0].title.lower() in fks_by_column)

        lines = []
        extra_fks = []
        for column in table.columns:
            column_fks = fks_by_column.get(column.title.lower(), [])
            lines.append(self.render_column(column, column_fks[:1],
                                            inline_primary=not table_level_pk,
                                            autoincrement=autoincrement))
            extra_fks.extend(column_fks[1:])

        if table_level_pk:
            cols = ', '.join(self.quote(c.title) for c in primary)
            lines.append(f"PRIMARY KEY ({cols})")
        for fk in extra_fks:
            lines.append(f"FOREIGN KEY ({self.quote(fk.column)}) {self.render_reference(fk)}")

        body = ',\n'.join('  ' + line for line in lines)
        closing = ') ENGINE=InnoDB;' if self.dialect == 'mysql' else ');'
        return f"CREATE TABLE IF NOT EXISTS {self.quote(table.name)} (\n{body}\n{closing}"

    def render_column(self, column: Column, foreign_keys: List[ForeignKeySpec],
                      inline_primary: bool = True, autoincrement: bool = False) -> str:
        parts = [self.quote(column.title), self.column_type(column)]
        if column.default is not None:
            parts.append(f"DEFAULT {format_default(column.default)}")
        if column.has('notnull'):
            parts.append("NOT NULL")
        if column.has('unique'):
            parts.append("UNIQUE")
        if column.has('primary') and inline_primary:
            parts.append("PRIMARY KEY AUTOINCREMENT" if autoincrement else "PRIMARY KEY")
        for fk in foreign_keys:
            parts.append(self.render_reference(fk))
        return ' '.join(parts)

    def render_reference(self, fk: ForeignKeySpec) -> str:
        text = f"REFERENCES {self.quote(fk.target_table)}({self.quote(fk.target_column)})"
        if fk.on_delete:
            text += f" ON DELETE {fk.on_delete}"
        if fk.on_update:
            text += f" ON UPDATE {fk.on_update}"
        return text

    def render_indexes(self, table: Table) -> List[str]:
        statements = []
        for column in table.columns:
            if column.has('index') and not column.has('primary'):
                name = f"idx_{sanitize_name(table.name)}_{sanitize_name(column.title)}"
                statements.append(f"CREATE INDEX {name} ON {self.quote(table.name)} ({self.quote(column.title)});")
        return statements

    # ------------------------------------------------------ foreign keys

    def collect_foreign_keys(self) -> List[ForeignKeySpec]:
        """
        Foreign keys from non-enum edges, then from columns' own retained
        references not covered by any edge; deduplicated case-insensitively
        """
        enum_targets = set()
        for edge in self.graph.enum_edges:
            enum_targets.add((edge.target, edge.target_column.lower()))

        result = []
        seen = set()
        covered = set()

        def add(fk: ForeignKeySpec):
            covered.add((fk.table.id, fk.column.lower()))
            if fk.key in seen:
                return
            seen.add(fk.key)
            result.append(fk)

        for edge in self.graph.foreign_key_edges:
            source = self.graph.get_table_by_id(edge.source)
            target = self.graph.get_table_by_id(edge.target)
            if source is None or target is None:
                logger.warning(f"Skipping edge {edge.id}: endpoint missing from graph")
                continue
            if (source.id, edge.source_column.lower()) in enum_targets:
                continue
            column = source.get_column(edge.source_column)
            target_column = target.get_column(edge.target_column)
            if column is None or target_column is None:
                logger.warning(f"Skipping edge {edge.id}: column missing from {source.name} or {target.name}")
                continue
            own = column.foreign_key
            add(ForeignKeySpec(source, column.title, target.name, target_column.title,
                               edge.on_delete or (own.on_delete if own else None),
                               edge.on_update or (own.on_update if own else None)))

        for table in self.graph.tables:
            for column in table.columns:
                fk = column.foreign_key
                if fk is None or (table.id, column.title.lower()) in covered:
                    continue
                if (table.id, column.title.lower()) in enum_targets:
                    continue
                add(ForeignKeySpec(table, column.title, fk.table, fk.column, fk.on_delete, fk.on_update))

        return result

    def render_alter_statements(self, foreign_keys: List[ForeignKeySpec]) -> List[str]:
        statements = []
        used_names = set()
        for fk in foreign_keys:
            base = sanitize_name(f"fk_{fk.table.name}_{fk.column}_{fk.target_table}_{fk.target_column}")
            name = base
            suffix = 2
            while name in used_names:
                name = f"{base}_{suffix}"
                suffix += 1
            used_names.add(name)
            statements.append(
                f"ALTER TABLE {self.quote(fk.table.name)} ADD CONSTRAINT {name} "
                f"FOREIGN KEY ({self.quote(fk.column)}) {self.render_reference(fk)};")
        return statements


def generate_sql(graph: SchemaGraph, settings: Optional[Settings] = None,
                 dialect: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Render a schema graph as SQL DDL

    Args:
        graph: Schema graph to render
        settings: Quoting / constraint placement / dialect settings
        dialect: Overrides settings.dialect when given
        now: Timestamp for the header comment

    Returns:
        SQL text, deterministic apart from the header timestamp
    """
    settings = settings or Settings()
    if dialect is not None and dialect != settings.dialect:
        if dialect not in DIALECTS:
            raise ValueError(f"Unsupported dialect: {dialect}. Expected one of {', '.join(DIALECTS)}")
        settings = Settings(settings.case_sensitive_identifiers, settings.use_inline_constraints, dialect)
    return SQLGenerator(graph, settings).generate(now)
