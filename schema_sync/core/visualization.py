"""
Schema Diagram Visualization Module - Renders schema graphs using Graphviz
"""
import html
import os
from typing import Dict

import graphviz

from .schema_model import EnumType, SchemaGraph, Table, DEFAULT_COLOR

# arrowheads at the (tail, head) of a source -> target edge
CARDINALITY_ARROWS = {
    'oneToOne': ('tee', 'tee'),
    'oneToMany': ('tee', 'crow'),
    'manyToOne': ('crow', 'tee'),
    'manyToMany': ('crow', 'crow'),
}


class SchemaDiagramRenderer:
    """Renders schema graphs using Graphviz"""

    def __init__(self, name: str = "Schema_Diagram", fmt: str = "png"):
        self.dot = graphviz.Digraph(name, format=fmt)
        self.dot.attr(rankdir="LR")
        self.dot.attr("node", fontname="Arial", fontsize="10", shape="plaintext")
        self.dot.attr("edge", arrowsize="0.7", penwidth="1.2", fontname="Arial", fontsize="9")
        self.node_names: Dict[str, str] = {}

    def table_label(self, table: Table) -> str:
        """HTML-like label: header row plus one row per column with PK/FK markers"""
        color = table.color.to_dict() if table.color else DEFAULT_COLOR
        rows = [
            f'<TR><TD COLSPAN="3" BGCOLOR="{color["dark"]}">'
            f'<FONT COLOR="white"><B>{html.escape(table.name)}</B></FONT></TD></TR>'
        ]
        for column in table.columns:
            markers = []
            if column.has('primary'):
                markers.append('PK')
            if column.foreign_key:
                markers.append('FK')
            if column.has('unique') and not column.has('primary'):
                markers.append('UQ')
            title = html.escape(column.title)
            if column.has('primary'):
                title = f"<B>{title}</B>"
            rows.append(
                f'<TR><TD ALIGN="LEFT" PORT="{html.escape(column.title)}">{title}</TD>'
                f'<TD ALIGN="LEFT">{html.escape(column.full_type)}</TD>'
                f'<TD>{" ".join(markers)}</TD></TR>'
            )
        return (f'<<TABLE BORDER="1" CELLBORDER="0" CELLSPACING="0" CELLPADDING="4" '
                f'BGCOLOR="{color["light"]}" COLOR="{color["border"]}">{"".join(rows)}</TABLE>>')

    @staticmethod
    def enum_label(enum: EnumType) -> str:
        rows = [f'<TR><TD BGCOLOR="#ede9fe"><B>«enum» {html.escape(enum.name)}</B></TD></TR>']
        for value in enum.values:
            rows.append(f'<TR><TD ALIGN="LEFT">{html.escape(value)}</TD></TR>')
        return f'<<TABLE BORDER="1" CELLBORDER="0" CELLSPACING="0" CELLPADDING="4">{"".join(rows)}</TABLE>>'

    def render_tables(self, graph: SchemaGraph):
        """Render one node per table"""
        for index, table in enumerate(graph.tables):
            node = f"table_{index}"
            self.node_names[table.id] = node
            self.dot.node(node, label=self.table_label(table))

    def render_enums(self, graph: SchemaGraph):
        """Render one node per enum type"""
        for index, enum in enumerate(graph.enums):
            node = f"enum_{index}"
            self.node_names[enum.id] = node
            self.dot.node(node, label=self.enum_label(enum))

    def render_edges(self, graph: SchemaGraph):
        """Render foreign key edges and dashed enum links"""
        for edge in graph.edges:
            source = self.node_names.get(edge.source)
            target = self.node_names.get(edge.target)
            if source is None or target is None:
                continue

            if edge.enum_link:
                self.dot.edge(source, f"{target}:{edge.target_column}",
                              style="dashed", color="#7c3aed", arrowhead="none")
                continue

            tail, head = CARDINALITY_ARROWS.get(edge.cardinality, ('none', 'normal'))
            self.dot.edge(
                f"{source}:{edge.source_column}",
                f"{target}:{edge.target_column}",
                label=f"{edge.source_column} → {edge.target_column}",
                dir="both",
                arrowtail=tail,
                arrowhead=head,
            )

    def build(self, graph: SchemaGraph) -> graphviz.Digraph:
        self.render_tables(graph)
        self.render_enums(graph)
        self.render_edges(graph)
        return self.dot

    def save(self, filename: str = "schema_diagram", directory: str = "output", view: bool = False) -> str:
        """Save the diagram to file"""
        output_path = os.path.join(directory, filename)
        return self.dot.render(output_path, view=view, cleanup=True)


def schema_to_dot(graph: SchemaGraph, name: str = "Schema_Diagram") -> str:
    """DOT source of a schema graph"""
    return SchemaDiagramRenderer(name).build(graph).source


def render_schema_diagram(graph: SchemaGraph,
                          output_name: str = "schema_diagram",
                          fmt: str = "png",
                          directory: str = "output",
                          view: bool = False) -> str:
    """
    Convenience function to render a schema diagram

    Args:
        graph: Schema graph to draw
        output_name: Output filename (without extension)
        fmt: Graphviz output format
        directory: Output directory
        view: Whether to open the diagram after rendering

    Returns:
        Path to the generated file
    """
    renderer = SchemaDiagramRenderer(output_name, fmt=fmt)
    renderer.build(graph)
    return renderer.save(output_name, directory, view)
