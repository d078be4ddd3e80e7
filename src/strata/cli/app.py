"""
Root Typer application for the strata CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from strata import __version__
from strata.cli.config import app as config_app
from strata.cli.schemas import app as schemas_app
from strata.cli.translate import translate
from strata.core.logging import configure_logging
from strata.core.settings import get_settings

app = Typer(
    name="strata",
    help="strata -- schema-driven record engine over SQL backends.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"strata {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """strata CLI -- inspect schemas and translate queries."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)


# ── Sub-commands ─────────────────────────────────────────────────────────

app.add_typer(schemas_app, name="schemas", help="Schema inspection.")
app.add_typer(config_app, name="config", help="Configuration inspection.")
app.command("translate")(translate)
