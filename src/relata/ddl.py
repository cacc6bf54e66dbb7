"""CREATE/DROP TABLE generation from mapping schemas."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from relata.schema import Column, MappingSchema
from relata.statements import Custom

logger = logging.getLogger(__name__)


def _column_definition(name: str, column: Column, dialect: Any, primary: bool = False) -> str:
    if primary and column.is_generated:
        return dialect.auto_primary_key(name)
    parts = [
        dialect.escape_identifier(name),
        dialect.column_type(column.atomic_type.value, column.constraints),
    ]
    if primary:
        parts.append("PRIMARY KEY")
    elif column.constraints.get("not_null"):
        parts.append("NOT NULL")
    if not primary and column.constraints.get("unique"):
        parts.append("UNIQUE")
    return " ".join(parts)


def table_columns(schema: MappingSchema) -> dict[str, list[tuple[str, Column]]]:
    """Physical columns per table; secondary tables repeat the primary key column."""
    tables: dict[str, list[tuple[str, Column]]] = {t: [] for t in schema.tables()}
    pk = schema.primary_key()
    pk_column = schema.column_for(pk)
    for table in schema.secondary_tables:
        tables[table].append((pk_column, schema.columns[pk]))
    for prop, column in schema.columns.items():
        tables[schema.table_for(prop)].append((schema.column_for(prop), column))
    for emb in schema.embedded.values():
        for prop, column in emb.columns.items():
            tables[emb.table_for(prop)].append((emb.column_for(prop), column))
    return tables


def create_table_statements(schema: MappingSchema, dialect: Any) -> list[str]:
    pk_column = schema.column_for(schema.primary_key())
    statements = []
    for table, columns in table_columns(schema).items():
        definitions = []
        for name, column in columns:
            if name == pk_column and column.primary:
                if table == schema.table:
                    definitions.append(_column_definition(name, column, dialect, primary=True))
                else:
                    definitions.append(
                        f"{dialect.escape_identifier(name)} "
                        f"{dialect.column_type(column.atomic_type.value, {})} PRIMARY KEY"
                    )
            else:
                definitions.append(_column_definition(name, column, dialect))
        statements.append(
            f"CREATE TABLE {dialect.escape_identifier(table)} ({', '.join(definitions)})"
        )
    return statements


def drop_table_statements(schema: MappingSchema, dialect: Any) -> list[str]:
    return [
        f"DROP TABLE IF EXISTS {dialect.escape_identifier(t)}" for t in reversed(schema.tables())
    ]


def generate_schema(entity_types: Iterable[Any], adapter: Any, forced: bool = False) -> list[str]:
    """Create the tables of ``entity_types``; ``forced`` drops them first.

    Returns the statements that were executed.
    """
    executed: list[str] = []
    for entity_type in entity_types:
        schema = entity_type.schema()
        statements = create_table_statements(schema, adapter)
        if forced:
            statements = drop_table_statements(schema, adapter) + statements
        for sql in statements:
            Custom(sql).exec(adapter)
            executed.append(sql)
        logger.info("created %d table(s) for %s", len(schema.tables()), schema.entity_name)
    return executed
