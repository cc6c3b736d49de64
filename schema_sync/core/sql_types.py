"""
Type lookup tables between SQL dialects and schema editor column types
"""
from typing import Dict, List, Optional, Tuple

# spellings folded into one schema type when parsing
TYPE_ALIASES: Dict[str, str] = {
    'int': 'integer',
    'int4': 'integer',
    'mediumint': 'integer',
    'int8': 'bigint',
    'int2': 'smallint',
    'character varying': 'varchar',
    'varchar2': 'varchar',
    'nvarchar': 'varchar',
    'character': 'char',
    'nchar': 'char',
    'bool': 'boolean',
    'float8': 'double precision',
    'double': 'double precision',
    'float4': 'real',
    'timestamp without time zone': 'timestamp',
    'timestamp with time zone': 'timestamptz',
    'time without time zone': 'time',
    'time with time zone': 'timetz',
}

# auto-incrementing pseudo types and the integer type they stand for
SERIAL_TYPES: Dict[str, str] = {
    'serial': 'integer',
    'serial4': 'integer',
    'bigserial': 'bigint',
    'serial8': 'bigint',
    'smallserial': 'smallint',
    'serial2': 'smallint',
}

# words that may follow the first word of a multi-word type name
TYPE_CONTINUATIONS = {'VARYING', 'PRECISION', 'WITH', 'WITHOUT', 'TIME', 'ZONE'}

KNOWN_TYPE_WORDS = {
    'bigint', 'bigserial', 'binary', 'bit', 'blob', 'bool', 'boolean', 'bytea', 'char',
    'character', 'cidr', 'date', 'datetime', 'decimal', 'double', 'enum', 'float', 'float4',
    'float8', 'inet', 'int', 'int2', 'int4', 'int8', 'integer', 'interval', 'json', 'jsonb',
    'longtext', 'macaddr', 'mediumint', 'mediumtext', 'money', 'nchar', 'numeric', 'nvarchar',
    'real', 'serial', 'serial2', 'serial4', 'serial8', 'smallint', 'smallserial', 'text',
    'time', 'timestamp', 'timestamptz', 'timetz', 'tinyint', 'tinytext', 'uuid', 'varbinary',
    'varchar', 'varchar2', 'xml', 'year',
}

# schema type -> dialect type; mapped types replace the column's own parameters,
# unmapped types are upper-cased and keep them
DIALECT_TYPE_MAP: Dict[str, Dict[str, str]] = {
    'postgresql': {
        'serial': 'SERIAL',
        'bigserial': 'BIGSERIAL',
        'smallserial': 'SMALLSERIAL',
        'datetime': 'TIMESTAMP',
        'tinyint': 'SMALLINT',
        'blob': 'BYTEA',
    },
    'mysql': {
        'uuid': 'VARCHAR(36)',
        'integer': 'INT',
        'int4': 'INT',
        'serial': 'INT AUTO_INCREMENT',
        'bigserial': 'BIGINT AUTO_INCREMENT',
        'smallserial': 'SMALLINT AUTO_INCREMENT',
        'jsonb': 'JSON',
        'timestamptz': 'DATETIME',
        'timetz': 'TIME',
        'money': 'DECIMAL(19,4)',
        'bytea': 'BLOB',
        'double precision': 'DOUBLE',
        'inet': 'VARCHAR(45)',
        'interval': 'VARCHAR(64)',
    },
    'sqlite': {
        'uuid': 'TEXT',
        'varchar': 'TEXT',
        'char': 'TEXT',
        'text': 'TEXT',
        'json': 'TEXT',
        'jsonb': 'TEXT',
        'integer': 'INTEGER',
        'int4': 'INTEGER',
        'bigint': 'INTEGER',
        'smallint': 'INTEGER',
        'tinyint': 'INTEGER',
        'serial': 'INTEGER',
        'bigserial': 'INTEGER',
        'smallserial': 'INTEGER',
        'boolean': 'INTEGER',
        'timestamp': 'DATETIME',
        'timestamptz': 'DATETIME',
        'timetz': 'TIME',
        'money': 'REAL',
        'double precision': 'REAL',
        'float': 'REAL',
        'bytea': 'BLOB',
        'inet': 'TEXT',
        'interval': 'TEXT',
    },
}

# parameters supplied when a dialect requires them and the column has none
DEFAULT_PARAMS: Dict[str, Dict[str, List[str]]] = {
    'mysql': {'varchar': ['255'], 'char': ['1']},
}


def normalize_type_name(type_name: str) -> Tuple[str, bool]:
    """
    Canonicalize a parsed SQL type name

    Returns:
        Tuple of (schema type, implies_primary) where implies_primary is True
        for SERIAL-like types
    """
    name = ' '.join(type_name.lower().split())
    if name in SERIAL_TYPES:
        return SERIAL_TYPES[name], True
    return TYPE_ALIASES.get(name, name), False


def canonical_type(type_name: str) -> str:
    """Type used to compare columns across dialect round trips"""
    name = ' '.join(type_name.lower().split())
    name = SERIAL_TYPES.get(name, name)
    return TYPE_ALIASES.get(name, name)


def is_serial(type_name: str) -> bool:
    return type_name.lower() in SERIAL_TYPES


def is_type_word(word: str) -> bool:
    """True if word can start a column type"""
    return word.lower() in KNOWN_TYPE_WORDS


def map_schema_type_to_sql_type(type_name: str, params: Optional[List[str]], dialect: str) -> str:
    """
    Map a schema column type to the type written for a dialect

    Args:
        type_name: schema type such as uuid or varchar
        params: the column's type parameters
        dialect: postgresql, mysql or sqlite

    Returns:
        The SQL type text, e.g. VARCHAR(36)
    """
    base = type_name.lower()
    mapping = DIALECT_TYPE_MAP.get(dialect, DIALECT_TYPE_MAP['postgresql'])
    if base in mapping:
        return mapping[base]

    params = list(params or []) or DEFAULT_PARAMS.get(dialect, {}).get(base, [])
    sql_type = base.upper()
    if params:
        return f"{sql_type}({','.join(params)})"
    return sql_type
