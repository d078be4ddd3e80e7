"""
CLI: ``strata schemas`` -- inspect the schema directory.
"""

from __future__ import annotations

from pathlib import Path

import typer

from strata.cli.utils import fail, load_registry, print_json, print_table

app = typer.Typer(no_args_is_help=True)

DIR_HELP = "Schema directory (default: STRATA_SCHEMA_DIR)"


@app.command("list")
def list_schemas(
    directory: Path | None = typer.Option(None, "--dir", "-d", help=DIR_HELP),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List every schema in the directory."""
    registry = load_registry(directory)
    rows = [
        {
            "name": schema.table_name,
            "primary_key": ",".join(schema.primary_keys),
            "data_source": schema.data_source or "default",
            "properties": len(schema.properties),
            "relations": ",".join(schema.relations) or "-",
        }
        for schema in registry.list_all()
    ]
    if as_json:
        print_json(rows)
        return
    print_table(rows, title="Schemas")


@app.command("show")
def show_schema(
    name: str = typer.Argument(..., help="Entity (table) name"),
    directory: Path | None = typer.Option(None, "--dir", "-d", help=DIR_HELP),
) -> None:
    """Print one schema in its wire (JSON) shape."""
    registry = load_registry(directory)
    schema = registry.find(name)
    if schema is None:
        fail(f"Unknown entity: {name}")
    print_json(schema.to_wire())
