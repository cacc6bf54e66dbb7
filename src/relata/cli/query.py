"""relata query: compile and run object queries from the command line."""

from __future__ import annotations

from typing import Any, Optional

import typer

from relata.adapters import BacktickDialect
from relata.cli import _exitcodes as ec
from relata.cli._database import close_adapter, open_adapter
from relata.cli._loader import load_models
from relata.cli._output import print_compiled, print_entities, print_error
from relata.errors import RelataError, StatementError
from relata.query import ObjectQuery

app = typer.Typer(no_args_is_help=True)


def _build_query(
    entity: str,
    models: str | None,
    models_path: str | None,
    with_chains: list[str] | None,
    limit: int | None,
    offset: int | None,
) -> tuple[ObjectQuery, dict[str, Any]]:
    if not models and not models_path:
        print_error("One of --models or --models-path is required")
        raise typer.Exit(ec.USAGE_ERROR)

    try:
        entity_types = load_models(models, models_path)
    except Exception as e:
        print_error(f"Failed to load models: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)

    if entity not in entity_types:
        print_error(f"Entity type '{entity}' not found in models")
        raise typer.Exit(ec.USAGE_ERROR)

    q = ObjectQuery(entity_types[entity])
    if with_chains:
        q = q.with_(*with_chains)
    if limit is not None:
        q = q.limit(limit)
    if offset is not None:
        q = q.offset(offset)
    return q, entity_types


@app.command(name="compile")
def query_compile_cmd(
    entity: str = typer.Argument(..., help="Root entity type name"),
    models: Optional[str] = typer.Option(None, "--models", help="Python import path for models"),
    models_path: Optional[str] = typer.Option(
        None, "--models-path", help="Filesystem path to models"
    ),
    with_chains: Optional[list[str]] = typer.Option(
        None, "--with", help="Property chain to join (repeatable)"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max rows"),
    offset: Optional[int] = typer.Option(None, "--offset", help="Skip first N rows"),
) -> None:
    """Print the SELECT an object query compiles to."""
    from relata.cli import state

    q, _ = _build_query(entity, models, models_path, with_chains, limit, offset)
    try:
        compiled = q.compile(BacktickDialect())
    except RelataError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)

    print_compiled(compiled, json_mode=state.json_output)


@app.command(name="run")
def query_run_cmd(
    entity: str = typer.Argument(..., help="Root entity type name"),
    models: Optional[str] = typer.Option(None, "--models", help="Python import path for models"),
    models_path: Optional[str] = typer.Option(
        None, "--models-path", help="Filesystem path to models"
    ),
    with_chains: Optional[list[str]] = typer.Option(
        None, "--with", help="Property chain to join (repeatable)"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", help="Max rows"),
    offset: Optional[int] = typer.Option(None, "--offset", help="Skip first N rows"),
) -> None:
    """Run an object query against --db and print the root entities."""
    from relata.cli import state

    q, entity_types = _build_query(entity, models, models_path, with_chains, limit, offset)
    adapter = open_adapter(entity_types.values())
    try:
        results = q.all(adapter)
    except StatementError as e:
        print_error(str(e))
        raise typer.Exit(ec.DATABASE_ERROR)
    except RelataError as e:
        print_error(str(e))
        raise typer.Exit(ec.USAGE_ERROR)
    finally:
        close_adapter(adapter, entity_types.values())

    print_entities(results, with_chains, json_mode=state.json_output)
    if not state.json_output:
        print(f"\n{len(results)} {entity} row(s)")
