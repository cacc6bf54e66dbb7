"""relata schema: export mapping schemas and generate DDL."""

from __future__ import annotations

import json
from typing import Any, Optional

import typer
import yaml

from relata.adapters import SqliteDialect
from relata.cli import _exitcodes as ec
from relata.cli._database import close_adapter, open_adapter
from relata.cli._loader import load_models
from relata.cli._output import print_error
from relata.ddl import create_table_statements, drop_table_statements
from relata.errors import RelataError, StatementError

app = typer.Typer(no_args_is_help=True)


def _load(models: str | None, models_path: str | None) -> dict[str, Any]:
    if not models and not models_path:
        print_error("One of --models or --models-path is required")
        raise typer.Exit(ec.USAGE_ERROR)
    try:
        entity_types = load_models(models, models_path)
    except Exception as e:
        print_error(f"Failed to load models: {e}")
        raise typer.Exit(ec.GENERAL_ERROR)
    if not entity_types:
        print_error("No entity types found in models")
        raise typer.Exit(ec.USAGE_ERROR)
    return entity_types


@app.command(name="export")
def schema_export_cmd(
    models: Optional[str] = typer.Option(None, "--models", help="Python import path for models"),
    models_path: Optional[str] = typer.Option(
        None, "--models-path", help="Filesystem path to models"
    ),
    output: Optional[str] = typer.Option(None, "--output", help="Output file path"),
    fmt: str = typer.Option("json", "--format", help="Output format: json or yaml"),
) -> None:
    """Export the mapping schemas of all entity types in the models."""
    if fmt not in ("json", "yaml"):
        print_error("--format must be 'json' or 'yaml'")
        raise typer.Exit(ec.USAGE_ERROR)
    entity_types = _load(models, models_path)

    try:
        data = {"entities": {name: cls.schema().to_dict() for name, cls in entity_types.items()}}
        for cls in entity_types.values():
            cls.schema().validate()
    except RelataError as e:
        print_error(str(e))
        raise typer.Exit(ec.GENERAL_ERROR)

    _write_output(data, output, fmt)


@app.command(name="ddl")
def schema_ddl_cmd(
    models: Optional[str] = typer.Option(None, "--models", help="Python import path for models"),
    models_path: Optional[str] = typer.Option(
        None, "--models-path", help="Filesystem path to models"
    ),
    forced: bool = typer.Option(False, "--forced", help="Drop existing tables first"),
    apply: bool = typer.Option(False, "--apply", help="Execute the statements against --db"),
) -> None:
    """Print (and optionally execute) CREATE TABLE statements for the models."""
    from relata.cli import state

    entity_types = _load(models, models_path)
    dialect = SqliteDialect()
    statements: list[str] = []
    try:
        for cls in entity_types.values():
            schema = cls.schema()
            if forced:
                statements.extend(drop_table_statements(schema, dialect))
            statements.extend(create_table_statements(schema, dialect))
    except RelataError as e:
        print_error(str(e))
        raise typer.Exit(ec.GENERAL_ERROR)

    if apply:
        adapter = open_adapter(entity_types.values())
        try:
            for sql in statements:
                adapter.exec_custom(sql)
        except StatementError as e:
            print_error(str(e))
            raise typer.Exit(ec.DATABASE_ERROR)
        finally:
            close_adapter(adapter, entity_types.values())

    if state.json_output:
        print(json.dumps(statements, indent=2))
    else:
        for sql in statements:
            print(f"{sql};")
    if apply and not state.json_output:
        print(f"Applied {len(statements)} statement(s) to {state.db}")


def _write_output(data: dict[str, Any], output: str | None, fmt: str) -> None:
    """Write schema data to file or stdout."""
    if fmt == "yaml":
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    else:
        content = json.dumps(data, indent=2, default=str)

    if output:
        with open(output, "w") as f:
            f.write(content)
        print(f"Written to {output}")
    else:
        print(content)
