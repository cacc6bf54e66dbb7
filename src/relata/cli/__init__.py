"""Relata CLI: inspect mapping schemas, generate DDL and run object queries."""

from __future__ import annotations

import logging
from typing import Optional

import typer

from relata.cli import query, schema
from relata.config import RelataConfig

app = typer.Typer(
    name="relata",
    help="Relata CLI: inspect mappings, generate DDL and run object queries.",
    no_args_is_help=True,
)


class _State:
    """Global CLI state shared across subcommands."""

    db: str = "relata.db"
    json_output: bool = False
    verbose: bool = False

    def config(self) -> RelataConfig:
        config = RelataConfig.from_env()
        config.database = self.db
        config.echo_sql = config.echo_sql or self.verbose
        return config


state = _State()


def _version_callback(value: bool) -> None:
    if value:
        from relata import __version__

        print(f"relata {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    db: Optional[str] = typer.Option(
        None,
        "--db",
        envvar="RELATA_DATABASE",
        help="SQLite database file path (default: relata.db)",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output when supported"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log executed SQL"),
    version: bool = typer.Option(
        False, "--version", help="Show version", is_eager=True, callback=_version_callback
    ),
) -> None:
    """Global options for all relata commands."""
    state.db = db or "relata.db"
    state.json_output = json_output
    state.verbose = verbose
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    if ctx.invoked_subcommand is None and not version:
        print(ctx.get_help())
        raise typer.Exit()


app.add_typer(schema.app, name="schema", help="Mapping schema export and DDL")
app.add_typer(query.app, name="query", help="Compile and run object queries")


def main() -> None:
    """Entry point for the relata CLI."""
    app()
