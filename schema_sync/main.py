#!/usr/bin/env python3
"""
Schema Sync - Main Program
Reads SQL DDL, recovers the schema graph and prints it back as a summary,
regenerated SQL, JSON or a Graphviz diagram
"""
import argparse
import json
import logging
import sys
from pathlib import Path

from schema_sync.core import (
    SchemaGraph, SchemaSyncError, Settings, ValidationError,
    apply_sql, generate_sql, render_schema_diagram, schema_to_dot,
)
from schema_sync.core.schema_model import DIALECTS

OUTPUT_FORMATS = ('summary', 'sql', 'json', 'dot', 'png', 'svg')


def summarize(graph: SchemaGraph) -> str:
    lines = [f"✅ Found {len(graph.tables)} table(s):"]
    for table in graph.tables:
        lines.append(f"   - {table.name} ({len(table.columns)} columns)")
        for column in table.columns:
            flags = f" [{', '.join(column.constraints)}]" if column.constraints else ""
            ref = ""
            if column.foreign_key:
                ref = f" -> {column.foreign_key.table}.{column.foreign_key.column}"
                if not column.foreign_key.resolved:
                    ref += " (unresolved)"
            lines.append(f"       {column.title}: {column.full_type}{flags}{ref}")
    if graph.enums:
        lines.append(f"🏷️  {len(graph.enums)} enum type(s):")
        for enum in graph.enums:
            lines.append(f"   - {enum.name}: {', '.join(enum.values)}")
    lines.append(f"🔗 {len(graph.foreign_key_edges)} relationship(s), {len(graph.enum_edges)} enum link(s)")
    return '\n'.join(lines)


def sql_to_schema(sql_content: str, args) -> str:
    """
    Run the apply pipeline on SQL text and render the requested output

    Args:
        sql_content: SQL string containing CREATE TABLE statements
        args: Parsed command line arguments

    Returns:
        Text to print or write
    """
    previous = None
    if args.previous:
        previous = SchemaGraph.from_dict(json.loads(Path(args.previous).read_text(encoding='utf-8')))

    result = apply_sql(sql_content, previous, fix=not args.no_fix)
    for warning in result.warnings:
        print(f"⚠️  {warning}", file=sys.stderr)

    settings = Settings(case_sensitive_identifiers=args.case_sensitive,
                        use_inline_constraints=args.inline,
                        dialect=args.dialect)
    if args.to == 'sql':
        return generate_sql(result.graph, settings)
    if args.to == 'json':
        return json.dumps(result.graph.to_dict(), indent=2, ensure_ascii=False)
    if args.to == 'dot':
        return schema_to_dot(result.graph)
    if args.to in ('png', 'svg'):
        output_path = render_schema_diagram(result.graph, args.output or 'schema_diagram', fmt=args.to)
        return f"🎨 Diagram saved to: {output_path}"
    return summarize(result.graph)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schema-sync",
        description="Parse SQL DDL into a schema graph and render it back"
    )
    parser.add_argument(
        "input",
        help="SQL file path or '-' for stdin"
    )
    parser.add_argument(
        "-o", "--output",
        help="Output file (diagram name without extension for png/svg)"
    )
    parser.add_argument(
        "--to",
        choices=OUTPUT_FORMATS,
        default="summary",
        help="What to produce"
    )
    parser.add_argument(
        "--dialect",
        choices=DIALECTS,
        default="postgresql",
        help="SQL dialect for --to sql"
    )
    parser.add_argument(
        "--inline",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Render foreign keys inline (default) or as ALTER TABLE statements"
    )
    parser.add_argument(
        "--case-sensitive",
        action="store_true",
        help="Quote every identifier"
    )
    parser.add_argument(
        "--no-fix",
        action="store_true",
        help="Don't auto-fix the SQL before validating it"
    )
    parser.add_argument(
        "--previous",
        help="JSON graph whose ids, positions and colors should be kept"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level"
    )
    return parser


def main(argv=None):
    """Main entry point"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # Read SQL content
    if args.input == "-":
        sql_content = sys.stdin.read()
    else:
        input_path = Path(args.input)
        if not input_path.exists():
            print(f"❌ Error: File not found: {args.input}", file=sys.stderr)
            return 1
        sql_content = input_path.read_text(encoding='utf-8')

    try:
        output = sql_to_schema(sql_content, args)
    except ValidationError as e:
        print(f"❌ SQL validation failed: {e}", file=sys.stderr)
        for finding in e.findings:
            print(f"   - {finding}", file=sys.stderr)
        return 1
    except (SchemaSyncError, ValueError, OSError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    if args.output and args.to not in ('png', 'svg'):
        Path(args.output).write_text(output, encoding='utf-8')
        print(f"✅ Output saved to: {args.output}")
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
