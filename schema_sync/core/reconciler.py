"""
Identity reconciliation - match freshly parsed entities to a previous graph

Every function here is pure: inputs are never mutated and fresh objects are
returned, so a failed parse can never leak changes into the current graph.
"""
import copy
import logging
from typing import Dict, List, Optional, Iterable

from .schema_model import SchemaGraph, Table, EnumType, Relationship, Position, slugify

logger = logging.getLogger(__name__)

GRID_COLUMNS = 3
GRID_ORIGIN = (100, 100)
GRID_STEP = (300, 200)


def grid_position(index: int) -> Position:
    """Default slot of the index-th table, wrapping every GRID_COLUMNS tables"""
    return Position(GRID_ORIGIN[0] + (index % GRID_COLUMNS) * GRID_STEP[0],
                    GRID_ORIGIN[1] + (index // GRID_COLUMNS) * GRID_STEP[1])


def enum_grid_position(index: int) -> Position:
    """Default slot of the index-th enum, in rows above the table grid"""
    return Position(GRID_ORIGIN[0] + (index % GRID_COLUMNS) * GRID_STEP[0],
                    GRID_ORIGIN[1] - GRID_STEP[1] * (index // GRID_COLUMNS + 1))


def _unique_id(base: str, taken: set) -> str:
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}-{suffix}"
        suffix += 1
    taken.add(candidate)
    return candidate


def _index_by_name(items: Iterable) -> Dict[str, object]:
    index = {}
    for item in items:
        index.setdefault(item.name.lower(), item)
    return index


def reconcile_tables(previous_tables: Optional[List[Table]], candidates: List[Table]) -> List[Table]:
    """
    Carry id, position and color over from same-named previous tables

    Args:
        previous_tables: tables of the graph being replaced (may be None)
        candidates: freshly parsed tables, in parse order

    Returns:
        New list of tables; unmatched tables get a grid slot from their
        parse index and a deterministic id
    """
    previous_by_name = _index_by_name(previous_tables or [])
    taken = {t.id for t in previous_tables or [] if t.id}
    result = []

    for index, candidate in enumerate(candidates):
        table = copy.deepcopy(candidate)
        old = previous_by_name.get(table.name.lower())
        if old is not None:
            table.id = old.id
            table.position = copy.deepcopy(old.position)
            table.color = copy.deepcopy(old.color)
            logger.debug(f"Table {table.name} keeps identity {old.id}")
        else:
            table.id = _unique_id(f"table-{slugify(table.name)}", taken)
            table.position = grid_position(index)
        for col_index, column in enumerate(table.columns):
            column.id = f"{table.id}-col-{col_index}"
        result.append(table)

    return result


def reconcile_enums(previous_enums: Optional[List[EnumType]], candidates: List[EnumType]) -> List[EnumType]:
    """Carry id and position over from same-named previous enums"""
    previous_by_name = _index_by_name(previous_enums or [])
    taken = {e.id for e in previous_enums or [] if e.id}
    result = []

    for index, candidate in enumerate(candidates):
        enum = copy.deepcopy(candidate)
        old = previous_by_name.get(enum.name.lower())
        if old is not None:
            enum.id = old.id
            enum.position = copy.deepcopy(old.position)
        else:
            enum.id = _unique_id(f"enum-{slugify(enum.name)}", taken)
            enum.position = enum_grid_position(index)
        result.append(enum)

    return result


def edge_key(source: str, source_handle: str, target: str, target_handle: str) -> str:
    return f"{source}|{source_handle}|{target}|{target_handle}"


def reverse_edge_key(source: str, source_handle: str, target: str, target_handle: str) -> str:
    """Key of the same connection drawn in the opposite direction"""
    source_col = Relationship.handle_column(source_handle)
    target_col = Relationship.handle_column(target_handle)
    return edge_key(target, f"source-{target_col}", source, f"target-{source_col}")


def edge_id_for_key(key: str) -> str:
    return "edge-" + key.replace('|', '-')


def _key_of(edge: Relationship) -> str:
    return edge_key(edge.source, edge.source_handle, edge.target, edge.target_handle)


def reconcile_edges(previous_edges: Optional[List[Relationship]],
                    candidates: List[Relationship]) -> List[Relationship]:
    """
    Give candidate edges stable ids and inherit styling from matching old edges

    An old edge matches when its key, or the key of its exact reverse, equals
    the candidate key. Candidates with the same key collapse into one edge.
    """
    previous_by_key: Dict[str, Relationship] = {}
    for edge in previous_edges or []:
        previous_by_key.setdefault(_key_of(edge), edge)

    result = []
    seen = set()
    for candidate in candidates:
        key = _key_of(candidate)
        if key in seen:
            continue
        seen.add(key)

        edge = copy.deepcopy(candidate)
        edge.id = edge_id_for_key(key)
        old = previous_by_key.get(key) or previous_by_key.get(
            reverse_edge_key(edge.source, edge.source_handle, edge.target, edge.target_handle))
        if old is not None:
            edge.label = old.label
            edge.edge_type = old.edge_type
            edge.animated = old.animated
        result.append(edge)

    return result


def reconcile_graph(previous: Optional[SchemaGraph], candidate: SchemaGraph) -> SchemaGraph:
    """
    Reconcile a whole candidate graph against the previous one

    Candidate edges must reference candidate table/enum ids; they are
    rewritten to the reconciled ids before the edges themselves are matched.
    """
    previous = previous or SchemaGraph()
    tables = reconcile_tables(previous.tables, candidate.tables)
    enums = reconcile_enums(previous.enums, candidate.enums)

    id_map = {}
    for old, new in zip(candidate.tables, tables):
        id_map[old.id] = new.id
    for old, new in zip(candidate.enums, enums):
        id_map[old.id] = new.id

    remapped = []
    for edge in candidate.edges:
        edge = copy.deepcopy(edge)
        edge.source = id_map.get(edge.source, edge.source)
        edge.target = id_map.get(edge.target, edge.target)
        remapped.append(edge)

    return SchemaGraph(tables, enums, reconcile_edges(previous.edges, remapped))
