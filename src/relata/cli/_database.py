"""CLI helpers for opening and binding the database adapter."""

from __future__ import annotations

from typing import Iterable

from relata.adapters import SqliteAdapter
from relata.types import Entity


def open_adapter(entity_types: Iterable[type[Entity]]) -> SqliteAdapter:
    """Open the CLI database and bind it for every connection the models use."""
    from relata.cli import state

    adapter = SqliteAdapter(config=state.config())
    for entity_type in entity_types:
        schema = entity_type.schema()
        entity_type.__registry__.bind(adapter, schema.connection)
    return adapter


def close_adapter(adapter: SqliteAdapter, entity_types: Iterable[type[Entity]]) -> None:
    for entity_type in entity_types:
        entity_type.__registry__.unbind(entity_type.schema().connection)
    adapter.close()
