"""
CLI utility helpers: output formatting and schema loading.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from strata.core.errors import StrataError
from strata.core.settings import get_settings
from strata.schema.registry import SchemaRegistry

console = Console()
err_console = Console(stderr=True)


def load_registry(directory: Path | None) -> SchemaRegistry:
    """Registry for ``directory`` (defaults to ``STRATA_SCHEMA_DIR``)."""
    schema_dir = directory or Path(get_settings().schema_dir)
    try:
        return SchemaRegistry.from_directory(schema_dir)
    except StrataError as e:
        fail(e)


def fail(error: StrataError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    if isinstance(error, StrataError):
        err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {escape(error.message)}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {escape(error)}")
    raise typer.Exit(code=1)


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None)
    columns = list(rows[0].keys())
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(escape(str(row.get(column, ""))) for column in columns))
    console.print(table)
