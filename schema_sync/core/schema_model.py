"""
Schema Graph Classes - Represent tables, columns, enum types and relationships
"""
import copy
import re
from typing import List, Optional, Dict, Any

CONSTRAINT_ORDER = ('primary', 'unique', 'notnull', 'index')
DIALECTS = ('postgresql', 'mysql', 'sqlite')
CARDINALITIES = ('oneToOne', 'oneToMany', 'manyToOne', 'manyToMany')
ENUM_TYPE_PREFIX = 'enum_'

DEFAULT_COLOR = {
    'light': '#e0f2fe',
    'dark': '#0c4a6e',
    'border': '#38bdf8',
}


def slugify(name: str) -> str:
    """Lower-case a name and collapse anything non-alphanumeric into underscores"""
    slug = re.sub(r'[^a-z0-9]+', '_', name.lower()).strip('_')
    return slug or 'unnamed'


class Position:
    """Canvas coordinates of a node"""

    def __init__(self, x: float = 0, y: float = 0):
        self.x = x
        self.y = y

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Position':
        if not data:
            return cls()
        return cls(data.get('x', 0), data.get('y', 0))

    def __eq__(self, other):
        return isinstance(other, Position) and (self.x, self.y) == (other.x, other.y)

    def __repr__(self):
        return f"Position(x={self.x}, y={self.y})"


class TableColor:
    """Light/dark/border color triple of a table node"""

    def __init__(self, light: str, dark: str, border: str):
        self.light = light
        self.dark = dark
        self.border = border

    @classmethod
    def from_base(cls, base_color: str) -> 'TableColor':
        """Derive light, dark and border variants from one hex color"""
        if not base_color or not re.match(r'^#[0-9a-fA-F]{6}$', base_color):
            return cls(**DEFAULT_COLOR)

        r = int(base_color[1:3], 16)
        g = int(base_color[3:5], 16)
        b = int(base_color[5:7], 16)

        def to_hex(red, green, blue):
            return f"#{red:02x}{green:02x}{blue:02x}"

        if r * 0.299 + g * 0.587 + b * 0.114 > 150:
            dark = to_hex(int(r * 0.6), int(g * 0.6), int(b * 0.6))
            border = to_hex(int(r * 0.9), int(g * 0.9), int(b * 0.9))
            return cls(base_color, dark, border)

        light = to_hex(min(255, int(r + (255 - r) * 0.7)),
                       min(255, int(g + (255 - g) * 0.7)),
                       min(255, int(b + (255 - b) * 0.7)))
        return cls(light, base_color, base_color)

    def to_dict(self) -> Dict[str, str]:
        return {"light": self.light, "dark": self.dark, "border": self.border}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['TableColor']:
        if not data:
            return None
        return cls(data.get('light', DEFAULT_COLOR['light']),
                   data.get('dark', DEFAULT_COLOR['dark']),
                   data.get('border', DEFAULT_COLOR['border']))

    def __eq__(self, other):
        return isinstance(other, TableColor) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"TableColor(light={self.light}, dark={self.dark}, border={self.border})"


class ForeignKeyRef:
    """Foreign key target of a column"""

    def __init__(self, table: str, column: str, on_delete: Optional[str] = None,
                 on_update: Optional[str] = None, resolved: bool = True):
        self.table = table
        self.column = column
        self.on_delete = on_delete
        self.on_update = on_update
        self.resolved = resolved

    def to_dict(self) -> Dict[str, Any]:
        data = {"table": self.table, "column": self.column, "resolved": self.resolved}
        if self.on_delete:
            data["onDelete"] = self.on_delete
        if self.on_update:
            data["onUpdate"] = self.on_update
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['ForeignKeyRef']:
        if not data:
            return None
        return cls(data['table'], data.get('column') or 'id',
                   on_delete=data.get('onDelete'),
                   on_update=data.get('onUpdate'),
                   resolved=data.get('resolved', True))

    def __repr__(self):
        flag = "" if self.resolved else " [unresolved]"
        return f"ForeignKeyRef({self.table}.{self.column}{flag})"


class Column:
    """Represents a column of a table"""

    def __init__(self, title: str, data_type: str, params: Optional[List[str]] = None,
                 constraints: Optional[List[str]] = None, default: Optional[str] = None,
                 foreign_key: Optional[ForeignKeyRef] = None, column_id: Optional[str] = None):
        self.id = column_id
        self.title = title
        self.type = data_type.lower()
        self.params = list(params or [])
        self.constraints: List[str] = []
        for constraint in constraints or []:
            self.add_constraint(constraint)
        self.default = default
        self.foreign_key = foreign_key

    @property
    def full_type(self) -> str:
        """Type with its parameter list, e.g. numeric(10,2)"""
        if self.params:
            return f"{self.type}({','.join(self.params)})"
        return self.type

    @property
    def is_enum(self) -> bool:
        return self.type.startswith(ENUM_TYPE_PREFIX)

    @property
    def enum_name(self) -> Optional[str]:
        return self.type[len(ENUM_TYPE_PREFIX):] if self.is_enum else None

    @property
    def is_unique(self) -> bool:
        return 'primary' in self.constraints or 'unique' in self.constraints

    def has(self, constraint: str) -> bool:
        return constraint in self.constraints

    def add_constraint(self, constraint: str):
        """Add a constraint once, keeping CONSTRAINT_ORDER; unknown names are rejected"""
        if constraint not in CONSTRAINT_ORDER:
            raise ValueError(f"Unknown column constraint: {constraint}")
        if constraint not in self.constraints:
            self.constraints.append(constraint)
            self.constraints.sort(key=CONSTRAINT_ORDER.index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "params": list(self.params),
            "constraints": list(self.constraints),
            "default": self.default,
            "foreignKey": self.foreign_key.to_dict() if self.foreign_key else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Column':
        return cls(data['title'], data.get('type', 'varchar'),
                   params=data.get('params'),
                   constraints=data.get('constraints'),
                   default=data.get('default'),
                   foreign_key=ForeignKeyRef.from_dict(data.get('foreignKey')),
                   column_id=data.get('id'))

    def __repr__(self):
        flags = f" {self.constraints}" if self.constraints else ""
        return f"Column(title={self.title}, type={self.full_type}{flags})"


class Table:
    """Represents a table node in the schema graph"""

    def __init__(self, name: str, table_id: Optional[str] = None,
                 position: Optional[Position] = None, color: Optional[TableColor] = None):
        self.id = table_id
        self.name = name
        self.columns: List[Column] = []
        self.position = position or Position()
        self.color = color

    def get_column(self, title: str) -> Optional[Column]:
        """Find a column by title, case-insensitively"""
        wanted = title.lower()
        for column in self.columns:
            if column.title.lower() == wanted:
                return column
        return None

    def unique_title(self, title: str) -> str:
        """Return title, or title_N when it collides with an existing column"""
        taken = {c.title.lower() for c in self.columns}
        if title.lower() not in taken:
            return title
        suffix = 1
        while f"{title}_{suffix}".lower() in taken:
            suffix += 1
        return f"{title}_{suffix}"

    def add_column(self, column: Column) -> Column:
        """Append a column, suffixing its title if it is already used"""
        column.title = self.unique_title(column.title)
        if column.id is None:
            column.id = f"{self.id or slugify(self.name)}-col-{len(self.columns)}"
        self.columns.append(column)
        return column

    @property
    def primary_columns(self) -> List[Column]:
        return [c for c in self.columns if c.has('primary')]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "columns": [c.to_dict() for c in self.columns],
            "position": self.position.to_dict(),
            "color": self.color.to_dict() if self.color else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Table':
        table = cls(data['name'], table_id=data.get('id'),
                    position=Position.from_dict(data.get('position')),
                    color=TableColor.from_dict(data.get('color')))
        for col_data in data.get('columns', []):
            table.add_column(Column.from_dict(col_data))
        return table

    def __repr__(self):
        return f"Table(name={self.name}, columns={len(self.columns)})"


class EnumType:
    """Represents an enum type declared with CREATE TYPE ... AS ENUM"""

    def __init__(self, name: str, values: Optional[List[str]] = None,
                 enum_id: Optional[str] = None, position: Optional[Position] = None):
        self.id = enum_id
        self.name = name
        self.values: List[str] = []
        for value in values or []:
            self.add_value(value)
        self.position = position or Position()

    @property
    def type_name(self) -> str:
        """Pseudo-type used by columns of this enum"""
        return f"{ENUM_TYPE_PREFIX}{self.name}"

    def add_value(self, value: str) -> bool:
        if value in self.values:
            return False
        self.values.append(value)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "values": list(self.values),
            "position": self.position.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EnumType':
        return cls(data['name'], data.get('values'), enum_id=data.get('id'),
                   position=Position.from_dict(data.get('position')))

    def __repr__(self):
        return f"EnumType(name={self.name}, values={self.values})"


class Relationship:
    """Represents an edge between two nodes (a foreign key or an enum link)"""

    def __init__(self, source: str, source_handle: str, target: str, target_handle: str,
                 cardinality: str = 'manyToOne', enum_link: bool = False,
                 on_delete: Optional[str] = None, on_update: Optional[str] = None,
                 label: Optional[str] = None, edge_type: str = 'smoothstep',
                 animated: bool = False, edge_id: Optional[str] = None):
        if cardinality not in CARDINALITIES:
            raise ValueError(f"Unknown cardinality: {cardinality}")
        self.id = edge_id
        self.source = source
        self.source_handle = source_handle
        self.target = target
        self.target_handle = target_handle
        self.cardinality = cardinality
        self.enum_link = enum_link
        self.on_delete = on_delete
        self.on_update = on_update
        self.label = label
        self.edge_type = edge_type
        self.animated = animated

    @staticmethod
    def handle_column(handle: str) -> str:
        """Strip the source-/target- prefix from a handle"""
        for prefix in ('source-', 'target-'):
            if handle.startswith(prefix):
                return handle[len(prefix):]
        return handle

    @property
    def source_column(self) -> str:
        return self.handle_column(self.source_handle)

    @property
    def target_column(self) -> str:
        return self.handle_column(self.target_handle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "sourceHandle": self.source_handle,
            "target": self.target,
            "targetHandle": self.target_handle,
            "cardinality": self.cardinality,
            "enumLink": self.enum_link,
            "onDelete": self.on_delete,
            "onUpdate": self.on_update,
            "label": self.label,
            "type": self.edge_type,
            "animated": self.animated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Relationship':
        return cls(data['source'], data['sourceHandle'], data['target'], data['targetHandle'],
                   cardinality=data.get('cardinality', 'manyToOne'),
                   enum_link=data.get('enumLink', False),
                   on_delete=data.get('onDelete'),
                   on_update=data.get('onUpdate'),
                   label=data.get('label'),
                   edge_type=data.get('type', 'smoothstep'),
                   animated=data.get('animated', False),
                   edge_id=data.get('id'))

    def __repr__(self):
        kind = "enum" if self.enum_link else self.cardinality
        return (f"Relationship({self.source}.{self.source_column} -> "
                f"{self.target}.{self.target_column}, type={kind})")


class Settings:
    """SQL editor settings that shape generated SQL"""

    def __init__(self, case_sensitive_identifiers: bool = False,
                 use_inline_constraints: bool = True, dialect: str = 'postgresql'):
        if dialect not in DIALECTS:
            raise ValueError(f"Unsupported dialect: {dialect}. Expected one of {', '.join(DIALECTS)}")
        self.case_sensitive_identifiers = case_sensitive_identifiers
        self.use_inline_constraints = use_inline_constraints
        self.dialect = dialect

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caseSensitiveIdentifiers": self.case_sensitive_identifiers,
            "useInlineConstraints": self.use_inline_constraints,
            "dialect": self.dialect,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], defaults: Optional['Settings'] = None) -> 'Settings':
        base = defaults or cls()
        data = data or {}
        return cls(data.get('caseSensitiveIdentifiers', base.case_sensitive_identifiers),
                   data.get('useInlineConstraints', base.use_inline_constraints),
                   data.get('dialect', base.dialect))

    def __repr__(self):
        return (f"Settings(dialect={self.dialect}, inline={self.use_inline_constraints}, "
                f"case_sensitive={self.case_sensitive_identifiers})")


class SchemaGraph:
    """The whole visual model: tables, enum types and edges"""

    def __init__(self, tables: Optional[List[Table]] = None, enums: Optional[List[EnumType]] = None,
                 edges: Optional[List[Relationship]] = None):
        self.tables: List[Table] = list(tables or [])
        self.enums: List[EnumType] = list(enums or [])
        self.edges: List[Relationship] = list(edges or [])

    def get_table(self, name: str) -> Optional[Table]:
        """Find a table by name, exact match first, then case-insensitive"""
        for table in self.tables:
            if table.name == name:
                return table
        wanted = name.lower()
        for table in self.tables:
            if table.name.lower() == wanted:
                return table
        return None

    def get_table_by_id(self, table_id: str) -> Optional[Table]:
        for table in self.tables:
            if table.id == table_id:
                return table
        return None

    def get_enum(self, name: str) -> Optional[EnumType]:
        wanted = name.lower()
        for enum in self.enums:
            if enum.name.lower() == wanted:
                return enum
        return None

    def get_enum_by_id(self, enum_id: str) -> Optional[EnumType]:
        for enum in self.enums:
            if enum.id == enum_id:
                return enum
        return None

    @property
    def foreign_key_edges(self) -> List[Relationship]:
        return [e for e in self.edges if not e.enum_link]

    @property
    def enum_edges(self) -> List[Relationship]:
        return [e for e in self.edges if e.enum_link]

    def is_empty(self) -> bool:
        return not self.tables and not self.enums

    def copy(self) -> 'SchemaGraph':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "enums": [e.to_dict() for e in self.enums],
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SchemaGraph':
        data = data or {}
        return cls([Table.from_dict(t) for t in data.get('tables', [])],
                   [EnumType.from_dict(e) for e in data.get('enums', [])],
                   [Relationship.from_dict(e) for e in data.get('edges', [])])

    def __repr__(self):
        return (f"SchemaGraph(tables={len(self.tables)}, enums={len(self.enums)}, "
                f"edges={len(self.edges)})")


def derive_cardinality(source_unique: bool, target_unique: bool) -> str:
    """Cardinality of a source -> target reference from uniqueness at each end"""
    if source_unique and target_unique:
        return 'oneToOne'
    if target_unique:
        return 'manyToOne'
    if source_unique:
        return 'oneToMany'
    return 'manyToMany'
