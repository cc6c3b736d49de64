"""
SQL <-> Schema Graph Translator Package
"""
from .errors import (
    SchemaSyncError, ValidationError, ParseError, TokenizeError, ApplyError,
    ApplyInProgressError, CompletionError,
)
from .schema_model import (
    Position, TableColor, ForeignKeyRef, Column, Table, EnumType, Relationship,
    Settings, SchemaGraph, derive_cardinality,
)
from .sql_parser import parse_sql
from .sql_generator import generate_sql
from .sql_validator import validate_sql, ValidationResult
from .sql_normalizer import (
    normalize_sql, quote_spaced_identifiers, remove_duplicate_alter_statements, insert_missing_commas,
)
from .reconciler import reconcile_graph
from .apply import SchemaStore, SqlApplyController, ApplyResult, apply_sql, prepare_sql
from .visualization import render_schema_diagram, schema_to_dot, SchemaDiagramRenderer

__all__ = [
    'SchemaSyncError',
    'ValidationError',
    'ParseError',
    'TokenizeError',
    'ApplyError',
    'ApplyInProgressError',
    'CompletionError',
    'Position',
    'TableColor',
    'ForeignKeyRef',
    'Column',
    'Table',
    'EnumType',
    'Relationship',
    'Settings',
    'SchemaGraph',
    'derive_cardinality',
    'parse_sql',
    'generate_sql',
    'validate_sql',
    'ValidationResult',
    'normalize_sql',
    'quote_spaced_identifiers',
    'remove_duplicate_alter_statements',
    'insert_missing_commas',
    'reconcile_graph',
    'SchemaStore',
    'SqlApplyController',
    'ApplyResult',
    'apply_sql',
    'prepare_sql',
    'render_schema_diagram',
    'schema_to_dot',
    'SchemaDiagramRenderer'
]
