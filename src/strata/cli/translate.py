"""
CLI: ``strata translate`` -- show the SQL a query description produces.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer

from strata.cli.utils import console, fail, load_registry, print_json
from strata.core.dialect import get_dialect
from strata.core.errors import StrataError
from strata.query.spec import Mode
from strata.query.translator import QueryTranslator


def _parse_json(label: str, text: str | None) -> Any:
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        fail(f"{label} is not valid JSON: {e}")


def translate(
    entity: str = typer.Argument(..., help="Entity (table) name"),
    query: str = typer.Argument("{}", help="Query description as JSON"),
    directory: Path | None = typer.Option(None, "--dir", "-d", help="Schema directory"),
    dialect: str = typer.Option("sqlite", "--dialect", help="sqlite, postgresql, asyncpg, mysql, mssql"),
    mode: str = typer.Option("select", "--mode", "-m", help="select, count, insert, update, delete"),
    data: str | None = typer.Option(None, "--data", help="Record payload as JSON (insert/update)"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Translate a query description to SQL and bound parameters."""
    registry = load_registry(directory)
    schema = registry.find(entity)
    if schema is None:
        fail(f"Unknown entity: {entity}")

    try:
        translator = QueryTranslator(get_dialect(dialect))
        statement_mode = Mode(mode)
    except ValueError as e:
        fail(str(e))

    try:
        statement = translator.translate(
            schema,
            _parse_json("QUERY", query),
            statement_mode,
            _parse_json("--data", data),
        )
    except StrataError as e:
        fail(e)

    if as_json:
        print_json(statement.to_dict())
        return
    console.print(statement.sql, markup=False, highlight=False, soft_wrap=True)
    console.print(f"params: {json.dumps(list(statement.params), default=str)}", markup=False, highlight=False, soft_wrap=True)
